from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Union

from .exceptions import MalformedRecord
from .models import NameMatch, SearchableRecord, SearchQuery
from .types import GeoPoint

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in metres (haversine on a spherical earth)."""
    lat_delta = math.radians(b.lat - a.lat)
    lon_delta = math.radians(b.lon - a.lon)
    h = math.sin(lat_delta / 2) ** 2 + (
        math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(lon_delta / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))


@dataclass
class RankedRecords:
    records: List[SearchableRecord] = field(default_factory=list)
    malformed: List[MalformedRecord] = field(default_factory=list)

    @property
    def malformed_count(self) -> int:
        return len(self.malformed)


Candidate = Union[SearchableRecord, Mapping[str, Any]]


def _matches_text(record: SearchableRecord, query: SearchQuery) -> bool:
    needle = query.text.lower()
    if not needle:
        return True
    if query.name_match is NameMatch.PREFIX:
        return record.name_lower.startswith(needle)
    return needle in record.name_lower


def filter_and_rank(candidates: Iterable[Candidate], query: SearchQuery) -> RankedRecords:
    """Apply the exact radius and the query filters, nearest first.

    Candidates may be parsed records or raw store documents. Documents that
    cannot be parsed are reported in ``malformed`` instead of failing the
    whole batch. Ties on distance go to the newer record.
    """
    result = RankedRecords()
    category = query.category.lower() if query.category is not None else None
    kept: List[SearchableRecord] = []

    for candidate in candidates:
        if isinstance(candidate, SearchableRecord):
            record = candidate
        else:
            try:
                record = SearchableRecord.from_document(candidate)
            except MalformedRecord as exc:
                logger.warning("Skipping malformed record: %s", exc)
                result.malformed.append(exc)
                continue

        distance = distance_m(query.center, record.location)
        if distance > query.radius_m:
            continue
        if not _matches_text(record, query):
            continue
        if category is not None and record.category_lower != category:
            continue
        if query.min_created_at is not None and record.created_at < query.min_created_at:
            continue
        if query.status is not None and record.status != query.status:
            continue
        kept.append(record.model_copy(update={"distance_m": distance}))

    # Two stable passes: newest first, then nearest first.
    kept.sort(key=lambda item: item.created_at, reverse=True)
    kept.sort(key=lambda item: item.distance_m)
    if query.limit is not None:
        kept = kept[: query.limit]
    result.records = kept
    return result
