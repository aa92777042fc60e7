"""Litestar application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from advanced_alchemy.config.asyncio import AsyncSessionConfig
from advanced_alchemy.extensions.litestar import SQLAlchemyAsyncConfig, SQLAlchemyPlugin
from litestar import Litestar
from litestar.openapi import OpenAPIConfig
from litestar.stores.base import Store
from litestar.stores.memory import MemoryStore
from sqlalchemy.ext.asyncio import AsyncEngine

from activity_ledger_server import __version__
from activity_ledger_server.api import api_routers
from activity_ledger_server.core.cache import CACHE_STORE_NAME
from activity_ledger_server.core.config import settings
from activity_ledger_server.core.database import close_database, engine, init_database
from activity_ledger_server.routes import root_redirect

logging.basicConfig(format="%(message)s", level=settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def create_app(db_engine: AsyncEngine | None = None, cache_store: Store | None = None) -> Litestar:
    """Create Litestar application.

    Args:
        db_engine: Engine to use instead of the configured one (tests)
        cache_store: Shared cache store (defaults to an in-process MemoryStore)

    Returns:
        Configured Litestar app instance
    """
    app_engine = db_engine or engine

    @asynccontextmanager
    async def lifespan(app: Litestar) -> AsyncIterator[None]:
        """Verify the database on startup and release the pool on shutdown."""
        logger.info(
            "Starting activity-ledger-server",
            version=__version__,
            timezone=settings.timezone,
            cache_version=settings.cache_version,
        )

        await init_database(app_engine)

        yield

        # Engines passed in by the caller are theirs to dispose
        if db_engine is None:
            await close_database(app_engine)
        logger.info("Shutdown complete")

    # In production with multiple instances, use a RedisStore instead
    store = cache_store if cache_store is not None else MemoryStore()

    return Litestar(
        route_handlers=[root_redirect, *api_routers],
        lifespan=[lifespan],
        openapi_config=OpenAPIConfig(
            title="activity-ledger-server API",
            version=__version__,
            description="Activity ledger with streak bonuses and household summaries",
        ),
        plugins=[
            SQLAlchemyPlugin(
                config=SQLAlchemyAsyncConfig(
                    engine_instance=app_engine,
                    session_dependency_key="session",
                    session_config=AsyncSessionConfig(expire_on_commit=False),
                ),
            ),
        ],
        stores={CACHE_STORE_NAME: store},
        debug=settings.log_level == "DEBUG",
    )


# Application instance
app = create_app()
