"""
Geographic utility functions.

Bounding boxes for nearby report listings. Real-time fan-out does not use
these; it works on geo cells (see realtime.geo).
"""

from math import radians, cos
from typing import Tuple

KM_PER_DEGREE_LAT = 111.0


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Approximate (min_lat, max_lat, min_lon, max_lon) box around a point.

    Longitude span is widened by 1/cos(lat) so the box stays roughly square
    away from the equator. Clamped to valid ranges.
    """
    lat_offset = radius_km / KM_PER_DEGREE_LAT
    cos_lat = abs(cos(radians(lat)))
    lon_offset = 180.0 if cos_lat < 1e-6 else radius_km / (KM_PER_DEGREE_LAT * cos_lat)

    return (
        max(lat - lat_offset, -90.0),
        min(lat + lat_offset, 90.0),
        max(lon - lon_offset, -180.0),
        min(lon + lon_offset, 180.0),
    )
