"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .rescue_consumer import RescueConsumer

__all__ = [
    "BaseConsumer",
    "RescueConsumer",
]
