"""Read-only household membership lookups."""

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core.cache import HOUSEHOLD_DATA_KEY, CacheClient
from activity_ledger_server.core.config import settings
from activity_ledger_server.models.household import HouseholdMember

logger = structlog.get_logger()


class HouseholdDirectory:
    """Resolve identities to households and back.

    Member lists are cached per household for ``HOUSEHOLD_CACHE_SECONDS``.
    Lookup failures degrade to "no household".
    """

    def __init__(self, session: AsyncSession, cache: CacheClient) -> None:
        """Initialize household directory.

        Args:
            session: Database session
            cache: Request-scoped cache client
        """
        self.session = session
        self.cache = cache
        self.logger = logger.bind(service="households")

    async def get_household_id(self, identity: str) -> str | None:
        """Household of ``identity`` (case-insensitive), or None."""
        identity = (identity or "").strip().lower()
        if not identity:
            return None

        try:
            result = await self.session.execute(
                select(HouseholdMember.household_id).where(
                    func.lower(HouseholdMember.identity) == identity
                )
            )
        except SQLAlchemyError as e:
            self.logger.warning("Household lookup failed", identity=identity, error=str(e))
            return None
        return result.scalars().first()

    async def get_member_identities(self, household_id: str) -> list[str]:
        """Lowercased identities of every member of ``household_id``."""
        if not household_id:
            return []

        cache_name = f"{HOUSEHOLD_DATA_KEY}:{household_id}"
        cached = await self.cache.get(cache_name)
        if isinstance(cached, list):
            return [str(m) for m in cached]

        try:
            result = await self.session.execute(
                select(HouseholdMember.identity)
                .where(HouseholdMember.household_id == household_id)
                .order_by(HouseholdMember.identity.asc())
            )
        except SQLAlchemyError as e:
            self.logger.warning("Member lookup failed", household_id=household_id, error=str(e))
            return []

        members = [m.lower() for m in result.scalars().all()]
        if members:
            await self.cache.set(cache_name, members, ttl=settings.household_cache_seconds)
        return members

    async def resolve_members(self, identity: str) -> list[str]:
        """Identities whose rows are aggregated together with ``identity``.

        The whole household when ``identity`` belongs to one, else just
        ``identity`` itself.
        """
        identity = (identity or "").strip().lower()
        if not identity:
            return []

        household_id = await self.get_household_id(identity)
        if household_id:
            members = await self.get_member_identities(household_id)
            if members:
                return members
        return [identity]
