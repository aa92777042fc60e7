"""Shared test fixtures."""

from collections.abc import AsyncIterator

import pytest
from litestar.stores.memory import MemoryStore
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.models.base import Base


@pytest.fixture
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncIterator[AsyncSession]:
    """Create async session for testing."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def cache_store() -> MemoryStore:
    """Shared cache tier, common to every CacheClient in one test."""
    return MemoryStore()


@pytest.fixture
def cache(cache_store: MemoryStore) -> CacheClient:
    """Request-scoped cache client over the shared test store."""
    return CacheClient(store=cache_store, version="test")


@pytest.fixture
async def catalog(async_session: AsyncSession):
    """Seed the standard activity catalog."""
    from tests.fixtures.ledger_seed import seed_catalog

    await seed_catalog(async_session)
    return async_session


@pytest.fixture
async def household(async_session: AsyncSession):
    """Seed a two-member household plus one identity living alone."""
    from tests.fixtures.ledger_seed import seed_household

    await seed_household(
        async_session,
        household_id="house-1",
        members=["alex@example.com", "Sam@Example.com"],
    )
    return "house-1"
