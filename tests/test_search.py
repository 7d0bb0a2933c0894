import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from lostfound_geo import (
    AuthenticationError,
    BoundingBoxRange,
    GeoPoint,
    InMemoryRecordStore,
    PartialSearchFailure,
    PostDraft,
    ProximitySearch,
    RadiusTooLarge,
    SearchQuery,
    SearchSettings,
    ServerError,
)

SAN_FRANCISCO = GeoPoint(37.7749, -122.4194)
NOW = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)

RANGE_1 = BoundingBoxRange("9q8yy", "9q8yy~")
RANGE_2 = BoundingBoxRange("9q8yz", "9q8yz~")
RANGE_3 = BoundingBoxRange("9q8zn", "9q8zn~")


def _doc(record_id, lat=37.7750, lon=-122.4194, name="Black Wallet", **extra):
    doc = {
        "id": record_id,
        "name": name,
        "category": "Accessories",
        "location": {"latitude": lat, "longitude": lon},
        "createdAt": NOW,
        "status": "available",
    }
    doc.update(extra)
    return doc


def _fast_settings(**overrides) -> SearchSettings:
    values = {"range_query_timeout": 1.0, "max_retries": 1, "retry_backoff": 0.0}
    values.update(overrides)
    return SearchSettings(**values)


class ScriptedStore:
    """Answers each range from a script; exceptions in the script are raised."""

    def __init__(self, script):
        self.script = script
        self.calls = []

    async def range_query(self, key_range, order_by="geohash"):
        self.calls.append(key_range)
        outcome = self.script[key_range.start_key]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _fixed_planner(*ranges):
    return lambda center, radius_m: list(ranges)


def _ids(result):
    return [record.id for record in result.records]


def test_partial_failure_keeps_the_successful_ranges() -> None:
    store = ScriptedStore(
        {
            RANGE_1.start_key: [_doc("a", lat=37.7751)],
            RANGE_2.start_key: ServerError("backend unavailable"),
            RANGE_3.start_key: [_doc("c", lat=37.7760)],
        }
    )
    search = ProximitySearch(
        store, settings=_fast_settings(), planner=_fixed_planner(RANGE_1, RANGE_2, RANGE_3)
    )
    query = SearchQuery(center=SAN_FRANCISCO, radius_m=1000)

    with pytest.raises(PartialSearchFailure) as excinfo:
        asyncio.run(search.run(query))

    failure = excinfo.value
    assert _ids(failure.result) == ["a", "c"]
    assert [record.id for record in failure.records] == ["a", "c"]
    assert not failure.result.complete
    assert len(failure.failures) == 1
    assert failure.failures[0].key_range == RANGE_2
    assert failure.failures[0].attempts == 2
    assert isinstance(failure.failures[0].cause, ServerError)


def test_allow_partial_returns_the_incomplete_result() -> None:
    store = ScriptedStore(
        {
            RANGE_1.start_key: [_doc("a")],
            RANGE_2.start_key: ServerError("down"),
        }
    )
    search = ProximitySearch(
        store, settings=_fast_settings(max_retries=0), planner=_fixed_planner(RANGE_1, RANGE_2)
    )
    result = asyncio.run(
        search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000), allow_partial=True)
    )
    assert _ids(result) == ["a"]
    assert result.complete is False
    assert result.ranges_queried == 2


def test_empty_complete_result_is_distinct_from_partial() -> None:
    store = ScriptedStore({RANGE_1.start_key: []})
    search = ProximitySearch(store, settings=_fast_settings(), planner=_fixed_planner(RANGE_1))
    result = asyncio.run(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000)))
    assert result.records == []
    assert result.complete is True


def test_records_from_overlapping_ranges_appear_once() -> None:
    shared = _doc("shared")
    store = ScriptedStore(
        {
            RANGE_1.start_key: [shared, _doc("only-1", lat=37.7752)],
            RANGE_2.start_key: [dict(shared)],
        }
    )
    search = ProximitySearch(
        store, settings=_fast_settings(), planner=_fixed_planner(RANGE_1, RANGE_2)
    )
    result = asyncio.run(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000)))
    assert _ids(result) == ["shared", "only-1"]


def test_transient_errors_are_retried() -> None:
    class FlakyStore:
        def __init__(self):
            self.calls = []

        async def range_query(self, key_range, order_by="geohash"):
            self.calls.append(key_range)
            if len(self.calls) == 1:
                raise ServerError("blip")
            return [_doc("a")]

    store = FlakyStore()
    search = ProximitySearch(
        store, settings=_fast_settings(max_retries=2), planner=_fixed_planner(RANGE_1)
    )
    result = asyncio.run(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000)))
    assert _ids(result) == ["a"]
    assert result.complete
    assert len(store.calls) == 2


def test_permanent_errors_are_not_retried() -> None:
    store = ScriptedStore({RANGE_1.start_key: AuthenticationError("bad key")})
    search = ProximitySearch(
        store, settings=_fast_settings(max_retries=3), planner=_fixed_planner(RANGE_1)
    )
    with pytest.raises(PartialSearchFailure) as excinfo:
        asyncio.run(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000)))
    assert len(store.calls) == 1
    assert excinfo.value.failures[0].attempts == 1


def test_slow_range_times_out_without_failing_the_search() -> None:
    class SlowStore:
        async def range_query(self, key_range, order_by="geohash"):
            if key_range == RANGE_2:
                await asyncio.sleep(5)
            return [_doc(key_range.start_key)]

    search = ProximitySearch(
        SlowStore(),
        settings=_fast_settings(range_query_timeout=0.05, max_retries=0),
        planner=_fixed_planner(RANGE_1, RANGE_2),
    )
    result = asyncio.run(
        search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000), allow_partial=True)
    )
    assert _ids(result) == [RANGE_1.start_key]
    assert isinstance(result.failures[0].cause, asyncio.TimeoutError)


def test_cancelling_the_search_abandons_outstanding_reads() -> None:
    class BlockingStore:
        def __init__(self):
            self.started = asyncio.Event()
            self.cancelled = 0
            self.finished = 0

        async def range_query(self, key_range, order_by="geohash"):
            self.started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
            self.finished += 1
            return []

    async def scenario():
        store = BlockingStore()
        search = ProximitySearch(
            store,
            settings=_fast_settings(range_query_timeout=60),
            planner=_fixed_planner(RANGE_1, RANGE_2, RANGE_3),
        )
        task = asyncio.ensure_future(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000)))
        await store.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return store

    store = asyncio.run(scenario())
    assert store.cancelled >= 1
    assert store.finished == 0


def test_invalid_radius_fails_before_any_store_call() -> None:
    store = ScriptedStore({})
    search = ProximitySearch(store, settings=_fast_settings())
    with pytest.raises(RadiusTooLarge):
        asyncio.run(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=30_000_000)))
    assert store.calls == []


def test_malformed_documents_are_reported() -> None:
    broken = _doc("broken")
    del broken["location"]
    store = ScriptedStore({RANGE_1.start_key: [broken, _doc("ok")]})
    search = ProximitySearch(store, settings=_fast_settings(), planner=_fixed_planner(RANGE_1))
    result = asyncio.run(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000)))
    assert _ids(result) == ["ok"]
    assert result.malformed_count == 1
    assert result.complete


def _published_store() -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    posts = {
        "wallet-near": ("Black Wallet", GeoPoint(37.7755, -122.4194), NOW),
        "wallet-old": ("Brown wallet", GeoPoint(37.7760, -122.4180), NOW - timedelta(days=40)),
        "keys-near": ("Car keys", GeoPoint(37.7745, -122.4200), NOW),
        "wallet-far": ("Red Wallet", GeoPoint(37.7849, -122.4194), NOW),
        "wallet-oakland": ("Wallet", GeoPoint(37.8044, -122.2712), NOW),
    }
    for post_id, (name, location, created_at) in posts.items():
        draft = PostDraft(
            name=name, category="Accessories", description="found", location=location
        )
        store.publish(post_id, draft, created_at=created_at)
    return store


def test_search_against_the_in_memory_store() -> None:
    search = ProximitySearch(_published_store(), settings=_fast_settings())
    result = asyncio.run(search.nearby(SAN_FRANCISCO, 1000, text="wallet"))
    assert _ids(result) == ["wallet-near", "wallet-old"]
    assert result.complete
    assert result.records[0].distance_m < result.records[1].distance_m


def test_search_with_recency_filter() -> None:
    search = ProximitySearch(_published_store(), settings=_fast_settings())
    result = asyncio.run(
        search.nearby(SAN_FRANCISCO, 1000, text="wallet", min_created_at=NOW - timedelta(days=7))
    )
    assert _ids(result) == ["wallet-near"]


def test_search_across_the_antimeridian() -> None:
    store = InMemoryRecordStore(
        [
            _doc("east", lat=10.0, lon=179.9995),
            _doc("west", lat=10.0, lon=-179.9995),
            _doc("elsewhere", lat=10.0, lon=-179.9),
        ]
    )
    search = ProximitySearch(store, settings=_fast_settings())
    result = asyncio.run(search.nearby(GeoPoint(10.0, 179.9999), 200))
    assert sorted(_ids(result)) == ["east", "west"]


def test_entries_that_are_not_documents_do_not_abort_the_search() -> None:
    store = ScriptedStore({RANGE_1.start_key: [None, ["junk"], _doc("ok")]})
    search = ProximitySearch(store, settings=_fast_settings(), planner=_fixed_planner(RANGE_1))
    result = asyncio.run(search.run(SearchQuery(center=SAN_FRANCISCO, radius_m=1000)))
    assert _ids(result) == ["ok"]
    assert result.malformed_count == 2
    assert result.complete


@pytest.mark.parametrize("precision", [1, 6, 10])
def test_record_at_the_centre_is_found_at_any_planned_precision(precision: int) -> None:
    store = InMemoryRecordStore()
    draft = PostDraft(
        name="Black Wallet", category="Accessories", description="found", location=SAN_FRANCISCO
    )
    store.publish("p", draft, created_at=NOW)
    search = ProximitySearch(store, settings=_fast_settings(geohash_precision=precision))
    result = asyncio.run(search.nearby(SAN_FRANCISCO, 0.2))
    assert _ids(result) == ["p"]


def test_in_memory_store_rejects_keys_shorter_than_planned_ranges() -> None:
    store = InMemoryRecordStore()
    with pytest.raises(ValueError):
        store.add(_doc("short", geohash="9q8yy"))
    assert len(store) == 0
