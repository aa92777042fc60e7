"""Two-tier cache for catalog data and ledger range reads.

Tier 1 is a plain dict owned by one ``CacheClient`` (one per request or unit
of work). Tier 2 is a shared Litestar ``Store`` with TTL, visible to every
request. All keys carry the configured version prefix.

Shared-store operations run under a short timeout and fail open: a slow or
broken store behaves like a cache miss, never like an error.
"""

import asyncio
import json
import logging
from typing import Any
from uuid import uuid4

from litestar import Request
from litestar.stores.base import Store
from litestar.stores.memory import MemoryStore

from activity_ledger_server.core.config import settings

logger = logging.getLogger(__name__)

# Key prefixes for different data types
ACTIVITY_DATA_KEY = "activityData"
DASHBOARD_RANGE_KEY = "dashboardRange"
HOUSEHOLD_DATA_KEY = "householdData"
LEDGER_GENERATION_KEY = "ledgerGeneration"

# Generation in effect before the first ledger write
INITIAL_GENERATION = "initial"


class CacheClient:
    """Request-scoped view over the shared cache store.

    Attributes:
        store: Shared TTL store
        version: Version prefix applied to every key
        default_ttl: TTL in seconds when ``set_json`` gets none
        timeout: Seconds allowed for a shared-store operation
    """

    def __init__(
        self,
        store: Store | None = None,
        version: str | None = None,
        default_ttl: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.version = version or settings.cache_version
        self.default_ttl = default_ttl or settings.cache_ttl_seconds
        self.timeout = timeout if timeout is not None else settings.cache_timeout_seconds
        self.local: dict[str, Any] = {}

    def key(self, name: str) -> str:
        """Versioned key for ``name``."""
        return f"{self.version}:{name}"

    def get_local(self, name: str) -> Any | None:
        return self.local.get(self.key(name))

    def set_local(self, name: str, value: Any) -> None:
        self.local[self.key(name)] = value

    async def get_json(self, name: str) -> Any | None:
        """Read a JSON payload from the shared tier.

        A payload that fails to deserialize is evicted and reported as a miss.
        """
        key = self.key(name)
        try:
            raw = await asyncio.wait_for(self.store.get(key), timeout=self.timeout)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Evicting corrupt cache entry {key}: {e}")
            await self._delete_shared(key)
            return None

    async def set_json(
        self, name: str, value: Any, ttl: int | None = None, expires: bool = True
    ) -> None:
        """Write a JSON payload to the shared tier.

        Args:
            name: Unversioned key
            value: JSON-serializable payload
            ttl: Seconds to live (defaults to ``default_ttl``)
            expires: False keeps the entry until it is deleted
        """
        key = self.key(name)
        try:
            payload = json.dumps(value, default=str)
            await asyncio.wait_for(
                self.store.set(
                    key, payload, expires_in=(ttl or self.default_ttl) if expires else None
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    async def get(self, name: str) -> Any | None:
        """Read through both tiers; a shared hit is copied into the local tier."""
        value = self.get_local(name)
        if value is not None:
            return value

        value = await self.get_json(name)
        if value is not None:
            self.set_local(name, value)
        return value

    async def set(self, name: str, value: Any, ttl: int | None = None) -> None:
        """Write to both tiers."""
        self.set_local(name, value)
        await self.set_json(name, value, ttl=ttl)

    async def delete(self, name: str) -> None:
        """Remove ``name`` from both tiers."""
        key = self.key(name)
        self.local.pop(key, None)
        await self._delete_shared(key)

    async def _delete_shared(self, key: str) -> None:
        try:
            await asyncio.wait_for(self.store.delete(key), timeout=self.timeout)
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")

    async def ledger_generation(self) -> str:
        """Token that changes whenever ledger rows are written."""
        value = await self.get_json(LEDGER_GENERATION_KEY)
        return value if isinstance(value, str) and value else INITIAL_GENERATION

    async def bump_ledger_generation(self) -> str:
        """Invalidate every cached ledger range by moving to a new generation.

        Each bump writes a fresh random token, so concurrent or delayed bumps
        can never restore a generation that was already in use.
        """
        generation = uuid4().hex
        await self.set_json(LEDGER_GENERATION_KEY, generation, expires=False)
        self.local = {
            k: v for k, v in self.local.items() if not k.startswith(self.key(DASHBOARD_RANGE_KEY))
        }
        return generation


# Name of the shared store registered on the application
CACHE_STORE_NAME = "ledger_cache"


async def provide_cache(request: Request[Any, Any, Any]) -> CacheClient:
    """Dependency returning a fresh request-scoped client over the shared store."""
    return CacheClient(store=request.app.stores.get(CACHE_STORE_NAME))
