"""Streak detection over ledger history.

A streak is the run of consecutive calendar days, counted back from the most
recent day an activity was logged. Only activities whose current base points
are positive accrue streaks.

Classification (relative to "today"):
    - run ends today or yesterday and is 3+ days long -> full streak
    - run ends yesterday and is exactly 2 days long    -> building streak
    - anything else                                    -> not reported

A 2-day run ending today is left out on purpose: it is not at risk yet.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core import dates
from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.core.config import settings
from activity_ledger_server.models.ledger import LedgerRow
from activity_ledger_server.services.catalog import ActivityCatalogService
from activity_ledger_server.services.codec import decode_entries
from activity_ledger_server.services.households import HouseholdDirectory

logger = structlog.get_logger()

FULL_STREAK_MIN_DAYS = 3
BUILDING_STREAK_DAYS = 2


class HistoryRow(Protocol):
    """The fields of a ledger row that streak detection reads."""

    date: Any
    encoded_activities: str | None
    submitter_identity: str | None


@dataclass
class StreakReport:
    """Current streaks keyed by activity name."""

    building_streaks: dict[str, int] = field(default_factory=dict)
    streaks: dict[str, int] = field(default_factory=dict)

    def length_for(self, activity_name: str) -> int:
        """Full streak length first, then building streak, else 0."""
        return self.streaks.get(activity_name) or self.building_streaks.get(activity_name) or 0

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {"building_streaks": dict(self.building_streaks), "streaks": dict(self.streaks)}


def current_run(sorted_days: list[date]) -> int:
    """Length of the consecutive-day run ending at the last (most recent) day.

    Args:
        sorted_days: Distinct days in ascending order
    """
    if not sorted_days:
        return 0

    run = 1
    for newer, older in zip(reversed(sorted_days), list(reversed(sorted_days))[1:]):
        if (newer - older).days == 1:
            run += 1
        else:
            break
    return run


def compute_streaks(
    history_rows: Iterable[HistoryRow],
    point_values: dict[str, int],
    member_filter: Iterable[str] | None = None,
    today: date | None = None,
) -> StreakReport:
    """Reconstruct current streaks from ledger history.

    Args:
        history_rows: Ledger rows (anything with date, encoded_activities and
            submitter_identity attributes)
        point_values: Current base points by activity name
        member_filter: Identities to include (case-insensitive); None includes all
        today: Reference day (defaults to today in the configured timezone)

    Returns:
        StreakReport; rows with unparseable dates are skipped
    """
    today = today or dates.today()
    yesterday = today - timedelta(days=1)
    members = {m.lower() for m in member_filter} if member_filter is not None else None

    activity_days: dict[str, set[date]] = {}

    for row in history_rows:
        if members is not None:
            identity = (getattr(row, "submitter_identity", None) or "").lower()
            if identity not in members:
                continue

        row_date = dates.parse_date(getattr(row, "date", None))
        if row_date is None:
            logger.warning("Skipping ledger row with invalid date", date=repr(row.date))
            continue

        for entry in decode_entries(getattr(row, "encoded_activities", None)):
            # Negative and unknown activities never accrue streaks
            if point_values.get(entry.name, 0) > 0:
                activity_days.setdefault(entry.name, set()).add(row_date)

    report = StreakReport()
    for name, days in activity_days.items():
        sorted_days = sorted(days)
        latest = sorted_days[-1]
        if latest not in (today, yesterday):
            continue

        run = current_run(sorted_days)
        if run >= FULL_STREAK_MIN_DAYS:
            report.streaks[name] = run
        elif run == BUILDING_STREAK_DAYS and latest == yesterday:
            report.building_streaks[name] = BUILDING_STREAK_DAYS

    logger.debug(
        "Streaks computed",
        building=len(report.building_streaks),
        full=len(report.streaks),
        filtered=members is not None,
    )
    return report


class StreakService:
    """Service for computing streaks from the stored ledger.

    Reads the most recent ``STREAK_HISTORY_DAYS`` of ledger rows and the
    cached catalog, then runs ``compute_streaks``.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: CacheClient,
        directory: HouseholdDirectory | None = None,
    ) -> None:
        """Initialize streak service.

        Args:
            session: Database session
            cache: Request-scoped cache client
            directory: Household lookup (defaults to the database-backed one)
        """
        self.session = session
        self.cache = cache
        self.directory = directory or HouseholdDirectory(session, cache)
        self.catalog = ActivityCatalogService(session, cache)
        self.logger = logger.bind(service="streaks")

    async def _history(self, today: date) -> list[LedgerRow]:
        since = today - timedelta(days=settings.streak_history_days)
        stmt = (
            select(LedgerRow)
            .where(LedgerRow.date >= since)
            .where(LedgerRow.date <= today)
            .order_by(LedgerRow.date.asc(), LedgerRow.id.asc())
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.warning("Ledger unavailable for streaks", error=str(e))
            return []
        return list(result.scalars().all())

    async def global_streaks(self, today: date | None = None) -> StreakReport:
        """Streaks across every submitter."""
        today = today or dates.today()
        catalog = await self.catalog.get_cached()
        rows = await self._history(today)
        return compute_streaks(rows, catalog.point_values, today=today)

    async def member_streaks(self, members: list[str], today: date | None = None) -> StreakReport:
        """Streaks across the given identities only."""
        today = today or dates.today()
        if not members:
            return StreakReport()
        catalog = await self.catalog.get_cached()
        rows = await self._history(today)
        return compute_streaks(rows, catalog.point_values, member_filter=members, today=today)

    async def household_streaks(
        self, household_id: str | None, today: date | None = None
    ) -> StreakReport:
        """Streaks for one household; no household id falls back to global."""
        if not household_id:
            self.logger.info("No household given, using global streaks")
            return await self.global_streaks(today)

        members = await self.directory.get_member_identities(household_id)
        if not members:
            self.logger.info("Household has no members", household_id=household_id)
            return StreakReport()

        return await self.member_streaks(members, today)

    async def streaks_for_identity(self, identity: str, today: date | None = None) -> StreakReport:
        """Household streaks for the identity's household, else global streaks."""
        household_id = await self.directory.get_household_id(identity)
        return await self.household_streaks(household_id, today)
