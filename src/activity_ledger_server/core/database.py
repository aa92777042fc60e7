"""Database initialization and session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from activity_ledger_server.core.config import settings

logger = logging.getLogger(__name__)


def create_engine() -> AsyncEngine:
    """Create PostgreSQL database engine.

    Returns:
        Async SQLAlchemy engine configured for PostgreSQL
    """
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_recycle=300,  # Recycle connections every 5 minutes
    )


# Global engine and session maker
engine = create_engine()
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Verify database is ready and migrations have been applied.

    Does NOT create tables - use Alembic migrations for schema management.
    A missing ``alembic_version`` table is logged, not raised, so the service
    still starts and degrades to empty results.
    """
    async with (db_engine or engine).connect() as conn:
        has_migrations = await conn.run_sync(
            lambda sync_conn: inspect(sync_conn).has_table("alembic_version")
        )

    if not has_migrations:
        logger.warning(
            "Database migrations have not been applied. "
            "Run 'alembic upgrade head' to initialize the database schema."
        )
    else:
        logger.info("Database initialized")


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Usage:
        async with get_session() as session:
            result = await session.execute(select(LedgerRow))
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_database(db_engine: AsyncEngine | None = None) -> None:
    """Close database connection pool."""
    await (db_engine or engine).dispose()
