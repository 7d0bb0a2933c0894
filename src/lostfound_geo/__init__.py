"""Proximity search for lost-and-found posts."""

from .bounds import BoundingBoxRange, geohash_query_bounds, query_bits_for_radius
from .client import HttpRecordStore
from .config import SearchSettings
from .exceptions import (
    AuthenticationError,
    InvalidCoordinate,
    InvalidGeohash,
    LostFoundError,
    MalformedRecord,
    NotFoundError,
    PartialSearchFailure,
    RadiusTooLarge,
    RangeQueryFailure,
    ServerError,
    StoreConnectionError,
    ValidationError,
)
from .models import (
    NameMatch,
    PostDraft,
    RecordStatus,
    SearchableRecord,
    SearchQuery,
    SearchResult,
)
from .privacy import approximate_location
from .ranking import RankedRecords, distance_m, filter_and_rank
from .search import ProximitySearch
from .store import InMemoryRecordStore, RecordStore
from .types import GeoPoint, decode_geohash, encode_geohash, geohash_bounds

__all__ = [
    "AuthenticationError",
    "BoundingBoxRange",
    "GeoPoint",
    "HttpRecordStore",
    "InMemoryRecordStore",
    "InvalidCoordinate",
    "InvalidGeohash",
    "LostFoundError",
    "MalformedRecord",
    "NameMatch",
    "NotFoundError",
    "PartialSearchFailure",
    "PostDraft",
    "ProximitySearch",
    "RadiusTooLarge",
    "RangeQueryFailure",
    "RankedRecords",
    "RecordStatus",
    "RecordStore",
    "SearchQuery",
    "SearchResult",
    "SearchSettings",
    "SearchableRecord",
    "ServerError",
    "StoreConnectionError",
    "ValidationError",
    "approximate_location",
    "decode_geohash",
    "distance_m",
    "encode_geohash",
    "filter_and_rank",
    "geohash_bounds",
    "geohash_query_bounds",
    "query_bits_for_radius",
]
