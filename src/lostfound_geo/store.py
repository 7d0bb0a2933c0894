from __future__ import annotations

import bisect
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from .bounds import BoundingBoxRange
from .models import PostDraft
from .types import DEFAULT_PRECISION, GeoPoint

Document = Mapping[str, Any]


class RecordStore(Protocol):
    """Read side of the post collection, as the search needs it.

    ``range_query`` returns every document whose key field lies in the
    inclusive range, ordered by that field. Each document carries its ``id``.
    """

    async def range_query(
        self, key_range: BoundingBoxRange, order_by: str = "geohash"
    ) -> Sequence[Document]:
        ...


class InMemoryRecordStore:
    """Sorted in-process store, for tests, fixtures and local demos."""

    def __init__(self, documents: Sequence[Document] = (), key_field: str = "geohash") -> None:
        self.key_field = key_field
        self._index: List[Tuple[str, str]] = []
        self._documents: Dict[str, Dict[str, Any]] = {}
        for document in documents:
            self.add(document)

    def __len__(self) -> int:
        return len(self._index)

    def add(self, document: Document) -> None:
        data = dict(document)
        if "id" not in data:
            raise ValueError("document requires an 'id'")
        key = data.get(self.key_field)
        if key is None:
            location = data.get("location")
            if location is None:
                raise ValueError(f"document {data['id']} has no {self.key_field!r} or location")
            key = GeoPoint.from_mapping(location).geohash
            data[self.key_field] = key
        elif len(key) < DEFAULT_PRECISION:
            # A key shorter than the planned ranges sorts before their start keys.
            raise ValueError(
                f"document {data['id']} key {key!r} is shorter than {DEFAULT_PRECISION} characters"
            )
        record_id = str(data["id"])
        previous = self._documents.get(record_id)
        if previous is not None:
            self._index.remove((previous[self.key_field], record_id))
        self._documents[record_id] = data
        bisect.insort(self._index, (key, record_id))

    def publish(
        self, post_id: str, draft: PostDraft, created_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        document = draft.to_document(created_at=created_at)
        document["id"] = post_id
        self.add(document)
        return document

    async def range_query(
        self, key_range: BoundingBoxRange, order_by: str = "geohash"
    ) -> List[Dict[str, Any]]:
        if order_by != self.key_field:
            raise ValueError(f"store is ordered by {self.key_field!r}, not {order_by!r}")
        keys = [key for key, _ in self._index]
        lo = bisect.bisect_left(keys, key_range.start_key)
        hi = bisect.bisect_right(keys, key_range.end_key)
        return [dict(self._documents[record_id]) for _, record_id in self._index[lo:hi]]
