import asyncio
from datetime import datetime, timedelta, timezone

from lostfound_geo import (
    GeoPoint,
    InMemoryRecordStore,
    PartialSearchFailure,
    PostDraft,
    ProximitySearch,
    approximate_location,
)


async def main() -> None:
    store = InMemoryRecordStore()
    now = datetime.now(timezone.utc)

    store.publish(
        "post:1",
        PostDraft(
            name="Black Wallet",
            category="Accessories",
            description="Leather wallet left on a bench",
            location=GeoPoint(37.7755, -122.4194),
        ),
    )
    store.publish(
        "post:2",
        PostDraft(
            name="iPhone 13",
            category="Electronics",
            description="Blue case, cracked screen",
            location=GeoPoint(37.7770, -122.4170),
        ),
        created_at=now - timedelta(days=2),
    )
    store.publish(
        "post:3",
        PostDraft(
            name="Wallet",
            category="Accessories",
            description="Found at the ferry terminal",
            location=GeoPoint(37.7955, -122.3937),
        ),
    )

    search = ProximitySearch(store)
    center = GeoPoint(37.7749, -122.4194)
    try:
        result = await search.nearby(center, 1500, text="wallet")
    except PartialSearchFailure as exc:
        print("results may be incomplete:", exc)
        result = exc.result

    for record in result.records:
        shown = approximate_location(record.location)
        print(record.id, record.name, f"{record.distance_m:.0f} m", shown)


if __name__ == "__main__":
    asyncio.run(main())
