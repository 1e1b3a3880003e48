"""Common utility functions."""

from .geo import bounding_box

__all__ = [
    "bounding_box",
]
