"""Ledger storage: per-day, per-identity rows of scored activities."""

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from activity_ledger_server.core import dates
from activity_ledger_server.core.cache import DASHBOARD_RANGE_KEY, CacheClient
from activity_ledger_server.core.config import settings as app_settings
from activity_ledger_server.models.ledger import LEDGER_COLUMNS, LedgerEvent, LedgerRow
from activity_ledger_server.schemas.settings import StreakSettings
from activity_ledger_server.services.codec import append_entries, join_entries
from activity_ledger_server.services.points import ProcessedActivity

logger = structlog.get_logger()


class LedgerConflictError(Exception):
    """Raised when concurrent writers keep invalidating an upsert.

    The submission was not recorded and can be retried.
    """

    retryable = True

    def __init__(self, day: date, identity: str, attempts: int) -> None:
        self.day = day
        self.identity = identity
        self.attempts = attempts
        super().__init__(
            f"Ledger row for {identity} on {day.isoformat()} changed during "
            f"{attempts} attempts; try again"
        )


@dataclass
class LedgerSnapshot:
    """Detached copy of a ledger row, safe to cache and share."""

    date: date
    total_points: int
    encoded_activities: str
    positive_count: int
    negative_count: int
    week_number: int
    submitter_identity: str

    @classmethod
    def from_row(cls, row: LedgerRow) -> "LedgerSnapshot":
        return cls(
            date=row.date,
            total_points=row.total_points or 0,
            encoded_activities=row.encoded_activities or "",
            positive_count=row.positive_count or 0,
            negative_count=row.negative_count or 0,
            week_number=row.week_number,
            submitter_identity=row.submitter_identity or "",
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LedgerSnapshot | None":
        day = dates.parse_date(data.get("date"))
        if day is None:
            return None
        try:
            return cls(
                date=day,
                total_points=int(data.get("total_points") or 0),
                encoded_activities=str(data.get("encoded_activities") or ""),
                positive_count=int(data.get("positive_count") or 0),
                negative_count=int(data.get("negative_count") or 0),
                week_number=int(data.get("week_number") or 0),
                submitter_identity=str(data.get("submitter_identity") or ""),
            )
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


def count_by_original_sign(activities: Iterable[ProcessedActivity]) -> tuple[int, int]:
    """Positive and negative counts by pre-bonus points; zero counts as neither."""
    positive = negative = 0
    for activity in activities:
        if activity.streak.original_points > 0:
            positive += 1
        elif activity.streak.original_points < 0:
            negative += 1
    return positive, negative


def filter_members(
    rows: Iterable[LedgerSnapshot], members: Iterable[str] | None
) -> list[LedgerSnapshot]:
    """Keep rows submitted by ``members`` (case-insensitive); None keeps all."""
    if members is None:
        return list(rows)
    wanted = {m.lower() for m in members}
    return [r for r in rows if r.submitter_identity.lower() in wanted]


class LedgerService:
    """Service for writing and reading ledger rows.

    Writes use optimistic concurrency: each row carries a version counter,
    and (date, lowercased identity) is unique. A merge that loses a race is
    rolled back and retried against the fresh row.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: CacheClient,
        max_retries: int | None = None,
    ) -> None:
        """Initialize ledger service.

        Args:
            session: Database session
            cache: Request-scoped cache client
            max_retries: Upsert attempts before ``LedgerConflictError``
        """
        self.session = session
        self.cache = cache
        self.max_retries = max_retries or app_settings.ledger_max_retries
        self.logger = logger.bind(service="ledger")

    async def find_row(self, day: date, identity: str) -> LedgerRow | None:
        """Row for ``day`` and ``identity`` (case-insensitive), newest first."""
        stmt = (
            select(LedgerRow)
            .where(LedgerRow.date == day)
            .where(LedgerRow.identity_key == identity.strip().lower())
            .order_by(LedgerRow.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def upsert(
        self,
        day: date,
        identity: str,
        activities: list[ProcessedActivity],
        streak_settings: StreakSettings,
        total_points: int | None = None,
    ) -> LedgerRow:
        """Merge a submission into the row for (``day``, ``identity``).

        Args:
            day: Calendar date of the submission
            identity: Submitter identity
            activities: Scored activities, in submission order
            streak_settings: Settings used to render streak annotations
            total_points: Points to add (defaults to the sum of ``activities``)

        Returns:
            The stored row after the merge

        Raises:
            ValueError: If identity or activities are empty
            LedgerConflictError: If every attempt lost a concurrent race
        """
        identity = identity.strip()
        if not identity:
            raise ValueError("identity must not be blank")
        if not activities:
            raise ValueError("activities must not be empty")

        if total_points is None:
            total_points = sum(a.points for a in activities)
        encoded = join_entries([a.encode(streak_settings) for a in activities])
        positive, negative = count_by_original_sign(activities)

        for attempt in range(1, self.max_retries + 1):
            try:
                row = await self._merge(day, identity, encoded, total_points, positive, negative)
                await self.session.flush()
                self.session.add_all(self._events(row, activities))
                await self.session.commit()
            except (StaleDataError, IntegrityError) as e:
                await self.session.rollback()
                self.logger.warning(
                    "Ledger write lost a race, retrying",
                    date=day.isoformat(),
                    identity=identity,
                    attempt=attempt,
                    error=type(e).__name__,
                )
                continue

            await self.cache.bump_ledger_generation()
            self.logger.info(
                "Ledger row written",
                date=day.isoformat(),
                identity=identity,
                points=total_points,
                activities=len(activities),
                attempt=attempt,
            )
            return row

        self.logger.error(
            "Ledger write gave up after repeated conflicts",
            date=day.isoformat(),
            identity=identity,
            attempts=self.max_retries,
        )
        raise LedgerConflictError(day, identity, self.max_retries)

    async def _merge(
        self,
        day: date,
        identity: str,
        encoded: str,
        total_points: int,
        positive: int,
        negative: int,
    ) -> LedgerRow:
        row = await self.find_row(day, identity)
        if row is None:
            row = LedgerRow(
                date=day,
                total_points=total_points,
                encoded_activities=encoded,
                positive_count=positive,
                negative_count=negative,
                week_number=dates.iso_week_number(day),
                submitter_identity=identity,
                identity_key=identity.lower(),
            )
            self.session.add(row)
            return row

        # Week number and submitter identity stay as first written
        row.total_points = (row.total_points or 0) + total_points
        row.encoded_activities = append_entries(row.encoded_activities or "", encoded)
        row.positive_count = (row.positive_count or 0) + positive
        row.negative_count = (row.negative_count or 0) + negative
        return row

    def _events(self, row: LedgerRow, activities: list[ProcessedActivity]) -> list[LedgerEvent]:
        return [
            LedgerEvent(
                ledger_row_id=row.id,
                date=row.date,
                submitter_identity=row.submitter_identity,
                activity_name=a.name,
                category=a.category,
                base_points=a.streak.original_points,
                bonus_points=a.streak.bonus_points,
                multiplier=a.streak.multiplier,
                streak_length=a.streak.streak_length,
                final_points=a.points,
            )
            for a in activities
        ]

    async def clear(self) -> int:
        """Delete every ledger row and event.

        Returns:
            Number of ledger rows removed
        """
        count = await self.session.scalar(select(func.count()).select_from(LedgerRow)) or 0
        await self.session.execute(delete(LedgerEvent))
        await self.session.execute(delete(LedgerRow))
        await self.session.commit()

        await self.cache.bump_ledger_generation()
        self.logger.info("Ledger cleared", rows=count)
        return count

    async def rows_in_range(
        self,
        start: date,
        end: date,
        members: Iterable[str] | None = None,
        use_cache: bool = True,
    ) -> list[LedgerSnapshot]:
        """Rows dated ``start``..``end`` inclusive, oldest first.

        The unfiltered range is cached under the current ledger generation,
        so any ledger write makes older entries unreachable.

        Args:
            start: First day
            end: Last day
            members: Identities to keep (case-insensitive); None keeps all
            use_cache: Read through the range cache
        """
        if end < start:
            return []

        cache_name = None
        if use_cache:
            generation = await self.cache.ledger_generation()
            cache_name = f"{DASHBOARD_RANGE_KEY}:{generation}:{start.isoformat()}:{end.isoformat()}"
            cached = await self.cache.get(cache_name)
            if isinstance(cached, list):
                snapshots = [
                    LedgerSnapshot.from_dict(item) for item in cached if isinstance(item, dict)
                ]
                if all(s is not None for s in snapshots):
                    return filter_members(snapshots, members)  # type: ignore[arg-type]
                self.logger.warning("Evicting malformed ledger range cache", key=cache_name)
                await self.cache.delete(cache_name)

        stmt = (
            select(LedgerRow)
            .where(LedgerRow.date >= start)
            .where(LedgerRow.date <= end)
            .order_by(LedgerRow.date.asc(), LedgerRow.id.asc())
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.warning("Ledger unavailable", error=str(e))
            return []

        snapshots = [LedgerSnapshot.from_row(row) for row in result.scalars().all()]
        if cache_name is not None:
            await self.cache.set(cache_name, [s.to_dict() for s in snapshots])
        return filter_members(snapshots, members)

    async def all_rows(self, members: Iterable[str] | None = None) -> list[LedgerSnapshot]:
        """Every row, oldest first. Not cached."""
        try:
            result = await self.session.execute(
                select(LedgerRow).order_by(LedgerRow.date.asc(), LedgerRow.id.asc())
            )
        except SQLAlchemyError as e:
            self.logger.warning("Ledger unavailable", error=str(e))
            return []
        return filter_members((LedgerSnapshot.from_row(r) for r in result.scalars().all()), members)

    async def export_rows(self, display: bool = False) -> list[list[Any]]:
        """Header plus every row in positional column order.

        Args:
            display: Format dates as ``MM/DD/YYYY`` and points with a sign
        """
        result = await self.session.execute(
            select(LedgerRow).order_by(LedgerRow.date.asc(), LedgerRow.id.asc())
        )
        rows = result.scalars().all()
        body = [r.to_display_row() if display else r.to_row() for r in rows]
        return [list(LEDGER_COLUMNS), *body]

    async def activity_log(
        self,
        start: date,
        end: date,
        members: Iterable[str] | None = None,
    ) -> list[LedgerEvent]:
        """Scored activities recorded between ``start`` and ``end``, newest first."""
        stmt = (
            select(LedgerEvent)
            .where(LedgerEvent.date >= start)
            .where(LedgerEvent.date <= end)
            .order_by(LedgerEvent.date.desc(), LedgerEvent.id.desc())
        )
        if members is not None:
            wanted = [m.lower() for m in members]
            stmt = stmt.where(func.lower(LedgerEvent.submitter_identity).in_(wanted))

        result = await self.session.execute(stmt)
        return list(result.scalars().all())
