from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from .bounds import BoundingBoxRange
    from .models import SearchableRecord, SearchResult


class LostFoundError(Exception):
    """Base error for everything raised by lostfound_geo."""


class InvalidCoordinate(LostFoundError, ValueError):
    """Latitude/longitude out of range or not a finite number."""


class InvalidGeohash(LostFoundError, ValueError):
    """Key contains characters outside the geohash alphabet."""


class RadiusTooLarge(LostFoundError, ValueError):
    """Search radius exceeds half the earth's circumference; narrow the search."""


class MalformedRecord(LostFoundError):
    """A store document is missing required fields and was skipped."""

    def __init__(self, record_id: Optional[str], reason: str, document: Any = None) -> None:
        super().__init__(f"record {record_id or '<unknown>'}: {reason}")
        self.record_id = record_id
        self.reason = reason
        self.document = document


class RangeQueryFailure(LostFoundError):
    """A single key-range read failed after all retries."""

    def __init__(
        self,
        key_range: "BoundingBoxRange",
        cause: BaseException,
        attempts: int,
    ) -> None:
        super().__init__(
            f"range [{key_range.start_key}, {key_range.end_key}] failed after "
            f"{attempts} attempt(s): {cause!r}"
        )
        self.key_range = key_range
        self.cause = cause
        self.attempts = attempts


class PartialSearchFailure(LostFoundError):
    """Some ranges failed; ``result`` holds what the others returned."""

    def __init__(self, result: "SearchResult") -> None:
        failed = len(result.failures)
        super().__init__(
            f"{failed} range quer{'y' if failed == 1 else 'ies'} failed; "
            f"{len(result.records)} record(s) may be incomplete"
        )
        self.result = result

    @property
    def records(self) -> List["SearchableRecord"]:
        return self.result.records

    @property
    def failures(self) -> List[RangeQueryFailure]:
        return self.result.failures


class StoreConnectionError(LostFoundError):
    """Could not reach the record store."""


class AuthenticationError(LostFoundError):
    """Invalid API key (401)."""


class NotFoundError(LostFoundError):
    """Collection or route not found (404)."""


class ValidationError(LostFoundError):
    """The store rejected the request parameters (400)."""


class ServerError(LostFoundError):
    """The store failed internally (5xx)."""
