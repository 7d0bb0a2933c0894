"""Display-only location blurring for map previews.

Nothing here feeds the geohash or the search; persisted keys always come
from the exact location.
"""

from __future__ import annotations

import random
from typing import Optional

from .types import GeoPoint

# Roughly 110 m of latitude either way.
DEFAULT_MAX_OFFSET_DEG = 0.001


def approximate_location(
    point: GeoPoint,
    max_offset_deg: float = DEFAULT_MAX_OFFSET_DEG,
    rng: Optional[random.Random] = None,
) -> GeoPoint:
    """Shift ``point`` by a uniform random offset of up to ``max_offset_deg`` per axis."""
    if max_offset_deg < 0:
        raise ValueError("max_offset_deg must be non-negative")
    rng = rng or random.Random()
    lat = point.lat + rng.uniform(-max_offset_deg, max_offset_deg)
    lon = point.lon + rng.uniform(-max_offset_deg, max_offset_deg)
    lat = min(90.0, max(-90.0, lat))
    if lon > 180.0:
        lon -= 360.0
    elif lon < -180.0:
        lon += 360.0
    return GeoPoint(lat=lat, lon=lon)
