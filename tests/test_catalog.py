"""Tests for the activity catalog."""

import json
from types import SimpleNamespace

import pytest
from litestar.stores.memory import MemoryStore
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core.cache import ACTIVITY_DATA_KEY, CacheClient
from activity_ledger_server.models.activity_definition import ActivityDefinition
from activity_ledger_server.services.catalog import (
    ActivityCatalogService,
    CatalogData,
    DefinitionInput,
    build_catalog,
    definitions_from_rows,
)
from tests.fixtures.ledger_seed import CATALOG


def definition(name, points, category, required=False):
    return SimpleNamespace(name=name, points=points, category=category, required=required)


class TestBuildCatalog:
    """Tests for row validation."""

    def test_valid_rows(self):
        catalog = build_catalog(
            [definition("Walk", 2, "Health"), definition("Soda", "-1", "Negative", True)]
        )
        assert catalog.point_values == {"Walk": 2, "Soda": -1}
        assert catalog.categories == {"Walk": "Health", "Soda": "Negative"}
        assert catalog.required == {"Soda"}

    def test_invalid_rows_skipped(self):
        catalog = build_catalog(
            [
                definition("", 2, "Health"),
                definition("No category", 2, "  "),
                definition("No points", None, "Health"),
                definition("Text points", "lots", "Health"),
                definition("Fractional", 1.5, "Health"),
                definition("Walk", "3", "Health"),
            ]
        )
        assert catalog.point_values == {"Walk": 3}

    def test_duplicate_keeps_first(self):
        catalog = build_catalog([definition("Walk", 2, "Health"), definition("Walk", 9, "Other")])
        assert catalog.point_values == {"Walk": 2}
        assert catalog.categories == {"Walk": "Health"}

    def test_definitions_from_dict_rows(self):
        rows = [
            {"Activity": "Walk", "Points": "2", "Category": "Health", "Required": "yes"},
            {"name": "Walk", "points": "5", "category": "Other"},
            {"name": "Bad", "points": "", "category": "Health"},
        ]
        definitions = definitions_from_rows(rows)
        assert definitions == [
            DefinitionInput(name="Walk", points=2, category="Health", required=True)
        ]

    def test_definitions_from_positional_rows(self):
        definitions = definitions_from_rows(
            [["Walk", 2, "Health"], ["Soda", -1, "Negative", "TRUE"]]
        )
        assert [(d.name, d.points, d.required) for d in definitions] == [
            ("Walk", 2, False),
            ("Soda", -1, True),
        ]

    def test_round_trip_through_cache_payload(self):
        catalog = CatalogData(
            point_values={"Walk": 2}, categories={"Walk": "Health"}, required={"Walk"}
        )
        assert CatalogData.from_dict(json.loads(json.dumps(catalog.to_dict()))) == catalog

    def test_malformed_cache_payload(self):
        assert CatalogData.from_dict(["nope"]) is None
        assert CatalogData.from_dict({"point_values": {"Walk": "x"}, "categories": {}}) is None


class TestActivityCatalogService:
    """Tests for loading and caching the catalog."""

    @pytest.mark.asyncio
    async def test_load_empty_table(self, async_session: AsyncSession, cache: CacheClient):
        catalog = await ActivityCatalogService(async_session, cache).load()
        assert catalog.is_empty()

    @pytest.mark.asyncio
    async def test_load_seeded(self, async_session: AsyncSession, catalog, cache: CacheClient):
        data = await ActivityCatalogService(async_session, cache).load()
        assert len(data.point_values) == len(CATALOG)
        assert data.required == {"Take vitamins"}

    @pytest.mark.asyncio
    async def test_get_cached_populates_both_tiers(
        self, async_session: AsyncSession, catalog, cache_store: MemoryStore
    ):
        cache = CacheClient(store=cache_store, version="test")
        first = await ActivityCatalogService(async_session, cache).get_cached()

        assert cache.get_local(ACTIVITY_DATA_KEY) is first
        assert await cache_store.get(cache.key(ACTIVITY_DATA_KEY)) is not None

        # A new request reads the shared tier without hitting the table
        await async_session.execute(ActivityDefinition.__table__.delete())
        await async_session.commit()
        second_cache = CacheClient(store=cache_store, version="test")
        second = await ActivityCatalogService(async_session, second_cache).get_cached()
        assert second.point_values == first.point_values

    @pytest.mark.asyncio
    async def test_empty_catalog_not_cached(
        self, async_session: AsyncSession, cache: CacheClient, cache_store: MemoryStore
    ):
        await ActivityCatalogService(async_session, cache).get_cached()
        assert cache.get_local(ACTIVITY_DATA_KEY) is None
        assert await cache_store.get(cache.key(ACTIVITY_DATA_KEY)) is None

    @pytest.mark.asyncio
    async def test_corrupt_shared_entry_evicted(
        self, async_session: AsyncSession, catalog, cache: CacheClient, cache_store: MemoryStore
    ):
        await cache_store.set(cache.key(ACTIVITY_DATA_KEY), "{not json")

        data = await ActivityCatalogService(async_session, cache).get_cached()

        assert len(data.point_values) == len(CATALOG)
        stored = await cache_store.get(cache.key(ACTIVITY_DATA_KEY))
        assert json.loads(stored)["point_values"]["Review budget"] == 4

    @pytest.mark.asyncio
    async def test_empty_shared_entry_evicted(
        self, async_session: AsyncSession, catalog, cache: CacheClient, cache_store: MemoryStore
    ):
        await cache_store.set(
            cache.key(ACTIVITY_DATA_KEY), json.dumps({"point_values": {}, "categories": {}})
        )
        data = await ActivityCatalogService(async_session, cache).get_cached()
        assert not data.is_empty()

    @pytest.mark.asyncio
    async def test_save_definitions_replaces_and_invalidates(
        self, async_session: AsyncSession, catalog, cache_store: MemoryStore
    ):
        cache = CacheClient(store=cache_store, version="test")
        service = ActivityCatalogService(async_session, cache)
        await service.get_cached()

        await service.save_definitions(
            [
                DefinitionInput(name="Walk", points=2, category="Health"),
                DefinitionInput(name="Budget", points=4, category="Financial Planning"),
            ]
        )

        assert cache.get_local(ACTIVITY_DATA_KEY) is None
        assert await cache_store.get(cache.key(ACTIVITY_DATA_KEY)) is None

        fresh = await ActivityCatalogService(
            async_session, CacheClient(store=cache_store, version="test")
        ).get_cached()
        assert fresh.point_values == {"Budget": 4, "Walk": 2}

        stored = await service.list_definitions()
        assert [d.name for d in stored] == ["Budget", "Walk"]

    @pytest.mark.asyncio
    async def test_save_nothing_valid_raises(
        self, async_session: AsyncSession, catalog, cache: CacheClient
    ):
        service = ActivityCatalogService(async_session, cache)
        with pytest.raises(ValueError):
            await service.save_definitions([DefinitionInput(name="", points=1, category="Health")])

        # Existing catalog untouched
        assert len((await service.load()).point_values) == len(CATALOG)

    @pytest.mark.asyncio
    async def test_import_rows(self, async_session: AsyncSession, cache: CacheClient):
        service = ActivityCatalogService(async_session, cache)
        data = await service.import_rows(
            [
                {"name": "Walk", "points": "2", "category": "Health"},
                {"name": "Nap", "points": "zzz", "category": "Health"},
            ]
        )
        assert data.point_values == {"Walk": 2}
