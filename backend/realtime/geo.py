"""
Geo cell codec used for real-time room membership.

This module provides:
- Encoding a latitude/longitude pair into a fixed-precision geohash cell
- Decoding a cell back into its bounding box
- Computing the Moore neighbourhood (up to 8 cells) around a cell

Cells are standard base-32 geohashes. Every connection lives in exactly one
cell; an event is fanned out to its origin cell plus the neighbours, so a
client sitting just across a cell boundary still hears about it.

Pure functions, no state. Precision comes from settings.REALTIME.
"""

from __future__ import annotations

import math
from typing import Optional, Set, Tuple

from django.conf import settings

from common.exceptions import InvalidCoordinate


# ---------------------- Configuration ----------------------

DEFAULT_PRECISION = 6
MIN_PRECISION = 1
MAX_PRECISION = 12

# Base32 alphabet for geohash
_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_BASE32_INDEX = {ch: i for i, ch in enumerate(_BASE32)}

# (lat step, lon step) for the 8 surrounding cells
_NEIGHBOR_OFFSETS = (
    (1, -1), (1, 0), (1, 1),
    (0, -1),         (0, 1),
    (-1, -1), (-1, 0), (-1, 1),
)


def get_precision() -> int:
    """Process-wide cell precision (settings.REALTIME['GEOCELL_PRECISION'])."""
    realtime = getattr(settings, "REALTIME", {}) or {}
    return int(realtime.get("GEOCELL_PRECISION", DEFAULT_PRECISION))


# ---------------------- Validation ----------------------

def validate_coordinate(lat, lon) -> Tuple[float, float]:
    """
    Coerce lat/lon to floats and check their ranges.

    Raises:
        InvalidCoordinate: missing, non-numeric, NaN/inf or out of range.
    """
    if lat is None or lon is None or isinstance(lat, bool) or isinstance(lon, bool):
        raise InvalidCoordinate("latitude and longitude are required")

    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        raise InvalidCoordinate("latitude and longitude must be numbers")

    if math.isnan(lat) or math.isnan(lon) or math.isinf(lat) or math.isinf(lon):
        raise InvalidCoordinate("latitude and longitude must be finite")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"latitude {lat} out of range [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(f"longitude {lon} out of range [-180, 180]")

    return lat, lon


def _check_precision(precision: int) -> int:
    if not MIN_PRECISION <= precision <= MAX_PRECISION:
        raise ValueError(f"precision must be between {MIN_PRECISION} and {MAX_PRECISION}")
    return precision


# ---------------------- Encode / Decode ----------------------

def encode_cell(lat, lon, precision: Optional[int] = None) -> str:
    """
    Encode latitude/longitude to a geohash cell.

    Args:
        lat: Latitude (-90 to 90)
        lon: Longitude (-180 to 180)
        precision: Number of characters (1-12), defaults to the configured precision

    Returns:
        Geohash string
    """
    lat, lon = validate_coordinate(lat, lon)
    precision = _check_precision(get_precision() if precision is None else precision)

    lat_range = (-90.0, 90.0)
    lon_range = (-180.0, 180.0)

    geohash = []
    bits = [16, 8, 4, 2, 1]
    bit = 0
    ch = 0
    is_lon = True

    while len(geohash) < precision:
        if is_lon:
            mid = (lon_range[0] + lon_range[1]) / 2
            if lon >= mid:
                ch |= bits[bit]
                lon_range = (mid, lon_range[1])
            else:
                lon_range = (lon_range[0], mid)
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if lat >= mid:
                ch |= bits[bit]
                lat_range = (mid, lat_range[1])
            else:
                lat_range = (lat_range[0], mid)

        is_lon = not is_lon

        if bit < 4:
            bit += 1
        else:
            geohash.append(_BASE32[ch])
            bit = 0
            ch = 0

    return "".join(geohash)


def decode_cell(cell: str) -> Tuple[float, float, float, float]:
    """
    Decode a geohash cell into its bounding box.

    Returns:
        (lat_min, lat_max, lon_min, lon_max)

    Raises:
        InvalidCoordinate: empty cell or characters outside the geohash alphabet.
    """
    if not cell or not isinstance(cell, str) or len(cell) > MAX_PRECISION:
        raise InvalidCoordinate(f"invalid geo cell: {cell!r}")

    lat_min, lat_max = -90.0, 90.0
    lon_min, lon_max = -180.0, 180.0
    is_lon = True

    for ch in cell.lower():
        idx = _BASE32_INDEX.get(ch)
        if idx is None:
            raise InvalidCoordinate(f"invalid geo cell: {cell!r}")
        for mask in (16, 8, 4, 2, 1):
            if is_lon:
                mid = (lon_min + lon_max) / 2
                if idx & mask:
                    lon_min = mid
                else:
                    lon_max = mid
            else:
                mid = (lat_min + lat_max) / 2
                if idx & mask:
                    lat_min = mid
                else:
                    lat_max = mid
            is_lon = not is_lon

    return lat_min, lat_max, lon_min, lon_max


def cell_center(cell: str) -> Tuple[float, float]:
    """Center (lat, lon) of a cell."""
    lat_min, lat_max, lon_min, lon_max = decode_cell(cell)
    return (lat_min + lat_max) / 2, (lon_min + lon_max) / 2


# ---------------------- Neighbours ----------------------

def cell_neighbors(cell: str) -> Set[str]:
    """
    Get the cells adjacent to `cell` at the same precision.

    Up to 8 cells (Moore neighbourhood). Rows past a pole are dropped, so
    polar cells have 5. Longitude wraps across the antimeridian. The result
    never contains `cell` itself.
    """
    lat_min, lat_max, lon_min, lon_max = decode_cell(cell)
    precision = len(cell)
    cell = cell.lower()

    lat_step = lat_max - lat_min
    lon_step = lon_max - lon_min
    center_lat = (lat_min + lat_max) / 2
    center_lon = (lon_min + lon_max) / 2

    neighbors = set()
    for dlat, dlon in _NEIGHBOR_OFFSETS:
        n_lat = center_lat + dlat * lat_step
        if n_lat > 90.0 or n_lat < -90.0:
            continue

        n_lon = center_lon + dlon * lon_step
        if n_lon > 180.0:
            n_lon -= 360.0
        elif n_lon < -180.0:
            n_lon += 360.0

        neighbor = encode_cell(n_lat, n_lon, precision)
        if neighbor != cell:
            neighbors.add(neighbor)

    return neighbors


def cells_for_origin(lat, lon, precision: Optional[int] = None) -> Tuple[str, Set[str]]:
    """
    Resolve the rooms an event at (lat, lon) is delivered to.

    Returns:
        (origin cell, origin cell + its neighbours)
    """
    cell = encode_cell(lat, lon, precision)
    return cell, {cell} | cell_neighbors(cell)
