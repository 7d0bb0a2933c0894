"""Proximity search: plan key ranges, read them concurrently, rank the union.

One search fans out to one store read per key range and waits for all of
them. Every read gets its own timeout and a bounded number of retries; a
range that still fails is recorded and the rest of the search carries on.
Cancelling the awaiting task cancels all reads still in flight.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .bounds import BoundingBoxRange, geohash_query_bounds
from .config import SearchSettings
from .exceptions import (
    AuthenticationError,
    NotFoundError,
    PartialSearchFailure,
    RangeQueryFailure,
    ValidationError,
)
from .models import SearchQuery, SearchResult
from .ranking import filter_and_rank
from .store import RecordStore
from .types import GeoPoint

logger = logging.getLogger(__name__)

Planner = Callable[[GeoPoint, float], List[BoundingBoxRange]]

# Retrying these cannot change the answer.
_PERMANENT_ERRORS = (AuthenticationError, NotFoundError, ValidationError)


class ProximitySearch:
    """Runs ``SearchQuery`` values against an injected record store."""

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[SearchSettings] = None,
        planner: Optional[Planner] = None,
    ) -> None:
        self.store = store
        self.settings = settings or SearchSettings()
        self._planner = planner or partial(
            geohash_query_bounds, max_precision=self.settings.geohash_precision
        )

    def plan(self, query: SearchQuery) -> List[BoundingBoxRange]:
        return self._planner(query.center, query.radius_m)

    async def nearby(
        self, center: GeoPoint, radius_m: float, allow_partial: bool = False, **filters: Any
    ) -> SearchResult:
        query = SearchQuery(center=center, radius_m=radius_m, **filters)
        return await self.run(query, allow_partial=allow_partial)

    async def run(self, query: SearchQuery, allow_partial: bool = False) -> SearchResult:
        """Execute ``query``.

        Raises ``PartialSearchFailure`` (holding the partial ``SearchResult``)
        if any range failed, unless ``allow_partial`` is set, in which case
        the result is returned and ``result.complete`` is False.
        """
        ranges = self.plan(query)
        logger.info(
            "Proximity search started",
            extra={
                "lat": query.center.lat,
                "lon": query.center.lon,
                "radius_m": query.radius_m,
                "ranges": len(ranges),
            },
        )

        outcomes = await asyncio.gather(*(self._query_range(key_range) for key_range in ranges))

        failures: List[RangeQueryFailure] = []
        merged: Dict[str, Any] = {}
        unkeyed: List[Any] = []
        for outcome in outcomes:
            if isinstance(outcome, RangeQueryFailure):
                failures.append(outcome)
                continue
            for document in outcome:
                record_id = _record_id(document)
                if record_id is None:
                    unkeyed.append(document)
                else:
                    merged.setdefault(record_id, document)

        ranked = filter_and_rank([*merged.values(), *unkeyed], query)
        result = SearchResult(
            records=ranked.records,
            failures=failures,
            malformed_count=ranked.malformed_count,
            ranges_queried=len(ranges),
        )
        logger.info(
            "Proximity search completed",
            extra={
                "candidates": len(merged) + len(unkeyed),
                "results_count": len(result.records),
                "failed_ranges": len(failures),
                "malformed": result.malformed_count,
            },
        )
        if failures and not allow_partial:
            raise PartialSearchFailure(result)
        return result

    async def _query_range(
        self, key_range: BoundingBoxRange
    ) -> Union[Sequence[Any], RangeQueryFailure]:
        settings = self.settings
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(
                    self.store.range_query(key_range, order_by=settings.geohash_field),
                    timeout=settings.range_query_timeout,
                )
            except asyncio.TimeoutError as exc:
                error: Exception = exc
            except _PERMANENT_ERRORS as exc:
                logger.error("Range %s rejected by store: %s", key_range, exc)
                return RangeQueryFailure(key_range, exc, attempt)
            except Exception as exc:
                error = exc

            if attempt > settings.max_retries:
                logger.error("Range %s failed after %d attempt(s): %r", key_range, attempt, error)
                return RangeQueryFailure(key_range, error, attempt)
            delay = settings.backoff_for(attempt)
            logger.warning(
                "Range %s attempt %d failed (%r); retrying in %.2fs", key_range, attempt, error, delay
            )
            await asyncio.sleep(delay)


def _record_id(document: Any) -> Optional[str]:
    if isinstance(document, Mapping):
        value = document.get("id")
    else:
        value = getattr(document, "id", None)
    return None if value is None else str(value)
