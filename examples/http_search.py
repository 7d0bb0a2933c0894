import asyncio

from lostfound_geo import GeoPoint, HttpRecordStore, ProximitySearch, SearchSettings


async def main() -> None:
    settings = SearchSettings()
    async with HttpRecordStore.from_settings(settings) as store:
        search = ProximitySearch(store, settings=settings)
        result = await search.nearby(
            GeoPoint(-23.5505, -46.6333),
            2000,
            allow_partial=True,
            category="Electronics",
        )
        if not result.complete:
            print(f"{len(result.failures)} range(s) failed; showing partial results")
        for record in result.records:
            print(record.id, record.name, f"{record.distance_m:.0f} m")


if __name__ == "__main__":
    asyncio.run(main())
