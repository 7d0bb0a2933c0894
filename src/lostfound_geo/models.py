from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .exceptions import InvalidCoordinate, MalformedRecord, RangeQueryFailure
from .types import GeoPoint


def _coerce_point(value: Any) -> GeoPoint:
    if isinstance(value, GeoPoint):
        return value
    if isinstance(value, str):
        return GeoPoint.from_string(value)
    if isinstance(value, Mapping):
        return GeoPoint.from_mapping(value)
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return GeoPoint(lat=value[0], lon=value[1])
    # Document-store SDK point objects expose latitude/longitude attributes.
    lat = getattr(value, "latitude", None)
    lon = getattr(value, "longitude", None)
    if lat is not None and lon is not None:
        return GeoPoint(lat=lat, lon=lon)
    raise InvalidCoordinate(f"cannot read a location from {value!r}")


def _point_document(point: GeoPoint) -> Dict[str, float]:
    return {"latitude": point.lat, "longitude": point.lon}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


PointField = Annotated[
    GeoPoint,
    PlainValidator(_coerce_point),
    PlainSerializer(_point_document),
]


class RecordStatus(str, Enum):
    AVAILABLE = "available"
    CLAIMED = "claimed"


class NameMatch(str, Enum):
    SUBSTRING = "substring"
    PREFIX = "prefix"


class SearchableRecord(BaseModel):
    """A found-item post as the proximity search sees it."""

    id: str
    location: PointField
    geo_key: str = Field(default="", alias="geohash")
    created_at: datetime = Field(alias="createdAt")
    name: str = ""
    name_lower: str = Field(default="", alias="nameLower")
    category: str = ""
    category_lower: str = Field(default="", alias="categoryLower")
    status: RecordStatus = RecordStatus.AVAILABLE
    distance_m: Optional[float] = Field(default=None, exclude=True)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _fill_derived(self) -> "SearchableRecord":
        # Older documents predate the lowercase/geohash fields.
        if not self.name_lower:
            self.name_lower = self.name.lower()
        if not self.category_lower:
            self.category_lower = self.category.lower()
        if not self.geo_key:
            self.geo_key = self.location.geohash
        return self

    @classmethod
    def from_document(
        cls, document: Mapping[str, Any], id: Optional[str] = None
    ) -> "SearchableRecord":
        """Parse a store document, raising ``MalformedRecord`` when it is unusable."""
        if not isinstance(document, Mapping):
            raise MalformedRecord(id, "document is not a mapping", document)
        data = dict(document)
        if id is not None:
            data.setdefault("id", id)
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            reason = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'record'}: {error['msg']}"
                for error in exc.errors()
            )
            raise MalformedRecord(data.get("id"), reason, document) from exc


class SearchQuery(BaseModel):
    center: PointField
    radius_m: float = Field(gt=0)
    text: str = ""
    name_match: NameMatch = NameMatch.SUBSTRING
    category: Optional[str] = None
    min_created_at: Optional[datetime] = None
    status: Optional[RecordStatus] = None
    limit: Optional[int] = Field(default=None, gt=0)

    @field_validator("min_created_at")
    @classmethod
    def _min_created_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class PostDraft(BaseModel):
    """Input for publishing a found item; produces the persisted document."""

    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    description: str = Field(min_length=1)
    location: PointField
    additional_info: str = ""
    photos: List[str] = Field(default_factory=list)
    creator_id: str = "unknown"

    def to_document(self, created_at: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "name": self.name,
            "nameLower": self.name.lower(),
            "category": self.category,
            "categoryLower": self.category.lower(),
            "description": self.description,
            "location": _point_document(self.location),
            "geohash": self.location.geohash,
            "photos": list(self.photos),
            "additionalInfo": self.additional_info,
            "creatorId": self.creator_id,
            "status": RecordStatus.AVAILABLE.value,
            "createdAt": _as_utc(created_at) or datetime.now(timezone.utc),
        }


@dataclass
class SearchResult:
    records: List[SearchableRecord] = field(default_factory=list)
    failures: List[RangeQueryFailure] = field(default_factory=list)
    malformed_count: int = 0
    ranges_queried: int = 0

    @property
    def complete(self) -> bool:
        """False when any range failed, so the records may be missing matches."""
        return not self.failures
