"""Tests for the two-tier cache client."""

import asyncio

import pytest
from litestar.stores.memory import MemoryStore

from activity_ledger_server.core.cache import (
    DASHBOARD_RANGE_KEY,
    INITIAL_GENERATION,
    LEDGER_GENERATION_KEY,
    CacheClient,
)


class SlowStore(MemoryStore):
    """Store whose reads never finish in time."""

    async def get(self, key, renew_for=None):
        await asyncio.sleep(5)
        return await super().get(key, renew_for)


class StallingStore(MemoryStore):
    """Store that holds its first write until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.stalled = False

    async def set(self, key, value, expires_in=None):
        if not self.stalled:
            self.stalled = True
            await self.release.wait()
        await super().set(key, value, expires_in)


class BrokenStore(MemoryStore):
    async def get(self, key, renew_for=None):
        raise ConnectionError("store down")

    async def set(self, key, value, expires_in=None):
        raise ConnectionError("store down")


class TestCacheClient:
    @pytest.mark.asyncio
    async def test_keys_are_versioned(self):
        store = MemoryStore()
        await CacheClient(store=store, version="v1").set_json("thing", {"a": 1})

        assert await CacheClient(store=store, version="v1").get_json("thing") == {"a": 1}
        assert await CacheClient(store=store, version="v2").get_json("thing") is None

    @pytest.mark.asyncio
    async def test_shared_hit_is_copied_to_local(self):
        store = MemoryStore()
        await CacheClient(store=store, version="v1").set("thing", [1, 2])

        client = CacheClient(store=store, version="v1")
        assert client.get_local("thing") is None
        assert await client.get("thing") == [1, 2]
        assert client.get_local("thing") == [1, 2]

    @pytest.mark.asyncio
    async def test_delete_clears_both_tiers(self):
        store = MemoryStore()
        client = CacheClient(store=store, version="v1")
        await client.set("thing", "x")
        await client.delete("thing")

        assert client.get_local("thing") is None
        assert await store.get(client.key("thing")) is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_evicted(self):
        store = MemoryStore()
        client = CacheClient(store=store, version="v1")
        await store.set(client.key("thing"), b"\xff not json")

        assert await client.get_json("thing") is None
        assert await store.get(client.key("thing")) is None

    @pytest.mark.asyncio
    async def test_slow_store_fails_open(self):
        client = CacheClient(store=SlowStore(), version="v1", timeout=0.01)
        assert await client.get("thing") is None

    @pytest.mark.asyncio
    async def test_broken_store_fails_open(self):
        client = CacheClient(store=BrokenStore(), version="v1")
        await client.set("thing", 1)
        # Local tier still works
        assert await client.get("thing") == 1
        assert await client.get_json("thing") is None

    @pytest.mark.asyncio
    async def test_ledger_generation_bump(self):
        store = MemoryStore()
        client = CacheClient(store=store, version="v1")
        client.set_local(f"{DASHBOARD_RANGE_KEY}:0:a:b", [])
        client.set_local("other", 1)

        assert await client.ledger_generation() == INITIAL_GENERATION
        first = await client.bump_ledger_generation()
        second = await client.bump_ledger_generation()
        assert len({INITIAL_GENERATION, first, second}) == 3

        assert client.get_local(f"{DASHBOARD_RANGE_KEY}:0:a:b") is None
        assert client.get_local("other") == 1
        assert await CacheClient(store=store, version="v1").ledger_generation() == second

    @pytest.mark.asyncio
    async def test_generation_never_expires(self):
        store = MemoryStore()
        client = CacheClient(store=store, version="v1", default_ttl=1)
        await client.bump_ledger_generation()
        assert await store.expires_in(client.key(LEDGER_GENERATION_KEY)) is None

    @pytest.mark.asyncio
    async def test_delayed_bump_never_restores_old_generation(self):
        store = StallingStore()
        late = asyncio.create_task(
            CacheClient(store=store, version="v1", timeout=5).bump_ledger_generation()
        )
        await asyncio.sleep(0.01)
        assert store.stalled

        writer = CacheClient(store=store, version="v1", timeout=5)
        served = await writer.bump_ledger_generation()
        assert await CacheClient(store=store, version="v1").ledger_generation() == served
        newer = await writer.bump_ledger_generation()

        store.release.set()
        delayed = await late

        current = await CacheClient(store=store, version="v1").ledger_generation()
        assert current == delayed
        assert current not in (INITIAL_GENERATION, served)
        assert len({delayed, served, newer}) == 3

    @pytest.mark.asyncio
    async def test_concurrent_bumps_both_move_generation(self):
        store = MemoryStore()
        clients = [CacheClient(store=store, version="v1") for _ in range(2)]

        tokens = await asyncio.gather(*(c.bump_ledger_generation() for c in clients))

        assert tokens[0] != tokens[1]
        current = await CacheClient(store=store, version="v1").ledger_generation()
        assert current in tokens
