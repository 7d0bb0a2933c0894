from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

from .exceptions import InvalidCoordinate, InvalidGeohash


BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BITS_PER_CHAR = 5
DEFAULT_PRECISION = 10
MAX_PRECISION = 22

_BASE32_INDEX = {ch: i for i, ch in enumerate(BASE32)}


def _check_coordinate(name: str, value: Any, limit: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCoordinate(f"{name} must be a number, got {value!r}")
    value = float(value)
    if math.isnan(value) or not -limit <= value <= limit:
        raise InvalidCoordinate(f"{name} must be within [-{limit:g}, {limit:g}], got {value}")
    return value


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "lat", _check_coordinate("latitude", self.lat, 90.0))
        object.__setattr__(self, "lon", _check_coordinate("longitude", self.lon, 180.0))

    def __str__(self) -> str:
        return f"{self.lat},{self.lon}"

    @property
    def geohash(self) -> str:
        return encode_geohash(self.lat, self.lon, precision=DEFAULT_PRECISION)

    @classmethod
    def from_string(cls, value: str) -> "GeoPoint":
        parts = value.split(",", 1)
        if len(parts) != 2:
            raise InvalidCoordinate("GeoPoint string must be 'lat,lon'")
        try:
            lat = float(parts[0].strip())
            lon = float(parts[1].strip())
        except ValueError as exc:
            raise InvalidCoordinate(str(exc)) from exc
        return cls(lat=lat, lon=lon)

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any]) -> "GeoPoint":
        """Build a point from ``latitude/longitude``, ``lat/lon`` or ``lat/lng`` keys."""
        for lat_key, lon_key in (("latitude", "longitude"), ("lat", "lon"), ("lat", "lng")):
            if lat_key in value and lon_key in value:
                return cls(lat=value[lat_key], lon=value[lon_key])
        raise InvalidCoordinate(f"no latitude/longitude pair in {sorted(value)}")


def encode_geohash(lat: float, lon: float, precision: int = DEFAULT_PRECISION) -> str:
    """Encode a coordinate as a base-32 geohash.

    Longitude takes the first bit. A value sitting exactly on a bisection
    line goes to the lower half, which keeps keys identical to the ones the
    mobile app already wrote.
    """
    lat = _check_coordinate("latitude", lat, 90.0)
    lon = _check_coordinate("longitude", lon, 180.0)
    precision = min(max(1, precision), MAX_PRECISION)
    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    bits = [16, 8, 4, 2, 1]
    bit = 0
    ch = 0
    even = True
    geohash = []

    while len(geohash) < precision:
        if even:
            mid = (lon_range[0] + lon_range[1]) / 2
            if lon > mid:
                ch |= bits[bit]
                lon_range[0] = mid
            else:
                lon_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if lat > mid:
                ch |= bits[bit]
                lat_range[0] = mid
            else:
                lat_range[1] = mid
        even = not even
        if bit < 4:
            bit += 1
        else:
            geohash.append(BASE32[ch])
            bit = 0
            ch = 0

    return "".join(geohash)


def geohash_bounds(key: str) -> Tuple[float, float, float, float]:
    """Return the ``(south, west, north, east)`` box covered by ``key``."""
    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    even = True
    for ch in key:
        try:
            value = _BASE32_INDEX[ch]
        except KeyError:
            raise InvalidGeohash(f"invalid geohash character {ch!r} in {key!r}") from None
        for mask in (16, 8, 4, 2, 1):
            target = lon_range if even else lat_range
            mid = (target[0] + target[1]) / 2
            if value & mask:
                target[0] = mid
            else:
                target[1] = mid
            even = not even
    return lat_range[0], lon_range[0], lat_range[1], lon_range[1]


def decode_geohash(key: str) -> GeoPoint:
    south, west, north, east = geohash_bounds(key)
    return GeoPoint(lat=(south + north) / 2, lon=(west + east) / 2)
