"""Key-range planning for circular proximity queries.

A search disc is covered by the geohash cells it touches at a bit depth
chosen from the radius. Cells are found on the exact lat/lon grid (with
longitude wrap-around and pole handling) rather than by walking key
neighbours, pruned by their true spherical distance from the centre, and
then merged into contiguous key ranges wherever their Z-order values are
consecutive. The ranges are sound, not tight: callers must still check the
real distance of every record they get back.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, List, Set, Tuple

from .exceptions import RadiusTooLarge
from .ranking import EARTH_RADIUS_M, distance_m
from .types import BASE32, BITS_PER_CHAR, DEFAULT_PRECISION, GeoPoint

# Half the circumference: every point on the sphere is within this distance.
MAX_RADIUS_M = math.pi * EARTH_RADIUS_M

# Radius inflation applied before picking a bit depth, so that a radius just
# under a level boundary still gets the coarser grid.
_PRECISION_SLACK = 1.02

# Absorbs float noise when comparing a cell's distance with the radius.
_PRUNE_TOLERANCE_M = 0.01

# Lower bound on longitude halvings. Near a pole the parallel shrinks to
# nothing and the width rule alone would leave a single column.
_MIN_LON_LEVELS = 3

KEY_SUFFIX_MAX = "~"


@dataclass(frozen=True)
class BoundingBoxRange:
    """Inclusive lexicographic key interval."""

    start_key: str
    end_key: str

    def contains(self, key: str) -> bool:
        return self.start_key <= key <= self.end_key

    def __str__(self) -> str:
        return f"[{self.start_key}, {self.end_key}]"


def _validate_radius(radius_m: float) -> float:
    if isinstance(radius_m, bool) or not isinstance(radius_m, (int, float)):
        raise ValueError(f"radius must be a number, got {radius_m!r}")
    if math.isnan(radius_m) or radius_m <= 0:
        raise ValueError(f"radius must be positive, got {radius_m}")
    if radius_m > MAX_RADIUS_M:
        raise RadiusTooLarge(
            f"radius {radius_m:.0f} m exceeds the {MAX_RADIUS_M:.0f} m limit; "
            "narrow the search"
        )
    return float(radius_m)


def _latitude_envelope(center: GeoPoint, radius_m: float) -> Tuple[float, float, bool]:
    span = math.degrees(radius_m / EARTH_RADIUS_M)
    north = center.lat + span
    south = center.lat - span
    reaches_pole = north >= 90.0 or south <= -90.0
    return max(-90.0, south), min(90.0, north), reaches_pole


def _longitude_half_width(center: GeoPoint, radius_m: float) -> float:
    # Widest longitude offset of a spherical cap that does not contain a pole.
    ratio = math.sin(radius_m / EARTH_RADIUS_M) / math.cos(math.radians(center.lat))
    return math.degrees(math.asin(min(1.0, ratio)))


def query_bits_for_radius(
    center: GeoPoint, radius_m: float, max_precision: int = DEFAULT_PRECISION
) -> int:
    """Pick the number of geohash bits to query with.

    The depth is the finest one whose cells are still at least as tall
    (along a meridian) and as wide (along the disc's most poleward parallel)
    as the slack-inflated radius, keeping at least ``2 ** _MIN_LON_LEVELS``
    columns around the globe. Geohash gives longitude the extra bit when
    the count is odd, so ``b`` bits make ``b // 2`` latitude halvings and
    ``b - b // 2`` longitude halvings.
    """
    radius_m = _validate_radius(radius_m) * _PRECISION_SLACK
    half_meridian = math.pi * EARTH_RADIUS_M
    lat_levels = math.floor(math.log2(half_meridian / radius_m)) if half_meridian > radius_m else 0

    south, north, _ = _latitude_envelope(center, radius_m)
    widest = max(abs(south), abs(north))
    parallel = 2 * math.pi * EARTH_RADIUS_M * math.cos(math.radians(widest))
    lon_levels = math.floor(math.log2(parallel / radius_m)) if parallel > radius_m else 0
    lon_levels = max(lon_levels, _MIN_LON_LEVELS)

    bits = min(2 * lat_levels + 1, 2 * lon_levels, max_precision * BITS_PER_CHAR)
    return max(1, bits)


def _distance_to_cell(
    center: GeoPoint, south: float, west: float, north: float, east: float
) -> float:
    """Exact spherical distance from ``center`` to the nearest point of a cell."""
    if (center.lon - west) % 360.0 <= east - west:
        lat = min(max(center.lat, south), north)
        return distance_m(center, GeoPoint(lat=lat, lon=center.lon))

    # Outside the cell's longitudes the nearest point sits on a meridian
    # edge; along a meridian the distance is smallest at a single latitude.
    phi = math.radians(center.lat)
    best = math.inf
    for edge in (west, east):
        dlon = math.radians(edge - center.lon)
        foot = math.degrees(math.atan2(math.sin(phi), math.cos(phi) * math.cos(dlon)))
        for lat in (south, north, min(max(foot, south), north)):
            best = min(best, distance_m(center, GeoPoint(lat=lat, lon=edge)))
    return best


def _covering_cells(center: GeoPoint, radius_m: float, bits: int) -> Iterator[Tuple[int, int]]:
    lat_bits = bits // 2
    lon_bits = bits - lat_bits
    rows_total = 1 << lat_bits
    cols_total = 1 << lon_bits
    cell_height = 180.0 / rows_total
    cell_width = 360.0 / cols_total

    south, north, reaches_pole = _latitude_envelope(center, radius_m)
    # One guard cell on each side catches points sitting on a cell edge.
    first_row = max(0, math.floor((south + 90.0) / cell_height) - 1)
    last_row = min(rows_total - 1, math.floor((north + 90.0) / cell_height) + 1)

    if reaches_pole:
        cols = list(range(cols_total))
    else:
        half = _longitude_half_width(center, radius_m)
        first_col = math.floor((center.lon - half + 180.0) / cell_width) - 1
        last_col = math.floor((center.lon + half + 180.0) / cell_width) + 1
        if last_col - first_col + 1 >= cols_total:
            cols = list(range(cols_total))
        else:
            cols = sorted({col % cols_total for col in range(first_col, last_col + 1)})

    limit = radius_m + _PRUNE_TOLERANCE_M
    for row in range(first_row, last_row + 1):
        cell_south = -90.0 + row * cell_height
        cell_north = cell_south + cell_height
        for col in cols:
            cell_west = -180.0 + col * cell_width
            cell_east = cell_west + cell_width
            if _distance_to_cell(center, cell_south, cell_west, cell_north, cell_east) <= limit:
                yield row, col


def _interleave(row: int, col: int, bits: int) -> int:
    lat_bit = bits // 2 - 1
    lon_bit = bits - bits // 2 - 1
    value = 0
    for position in range(bits):
        if position % 2 == 0:
            value = (value << 1) | ((col >> lon_bit) & 1)
            lon_bit -= 1
        else:
            value = (value << 1) | ((row >> lat_bit) & 1)
            lat_bit -= 1
    return value


def _to_key(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(BASE32[value & 31])
        value >>= BITS_PER_CHAR
    return "".join(reversed(chars))


def _key_range(first: int, last: int, bits: int) -> BoundingBoxRange:
    length = -(-bits // BITS_PER_CHAR)
    pad = length * BITS_PER_CHAR - bits
    start = _to_key(first << pad, length)
    end = _to_key((last << pad) | ((1 << pad) - 1), length)
    return BoundingBoxRange(start_key=start, end_key=end + KEY_SUFFIX_MAX)


def geohash_query_bounds(
    center: GeoPoint, radius_m: float, max_precision: int = DEFAULT_PRECISION
) -> List[BoundingBoxRange]:
    """Key ranges that together contain every point within ``radius_m`` of ``center``.

    Raises ``RadiusTooLarge`` above half the earth's circumference and
    ``ValueError`` for a non-positive radius.
    """
    radius_m = _validate_radius(radius_m)
    bits = query_bits_for_radius(center, radius_m, max_precision=max_precision)
    zvalues: Set[int] = {
        _interleave(row, col, bits) for row, col in _covering_cells(center, radius_m, bits)
    }

    ranges: List[BoundingBoxRange] = []
    ordered = sorted(zvalues)
    if not ordered:
        return ranges
    first = last = ordered[0]
    for value in ordered[1:]:
        if value == last + 1:
            last = value
            continue
        ranges.append(_key_range(first, last, bits))
        first = last = value
    ranges.append(_key_range(first, last, bits))
    return ranges
