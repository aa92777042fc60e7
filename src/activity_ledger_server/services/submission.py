"""Submission entry point: score activities and record them in the ledger."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core import dates
from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.services.aggregator import Aggregator
from activity_ledger_server.services.catalog import ActivityCatalogService
from activity_ledger_server.services.households import HouseholdDirectory
from activity_ledger_server.services.ledger import LedgerConflictError, LedgerService
from activity_ledger_server.services.points import (
    ProcessedActivity,
    StreakSettingsService,
    process_activity,
    process_skipped_activity,
)
from activity_ledger_server.services.streaks import StreakService

logger = structlog.get_logger()


@dataclass
class SubmissionResult:
    success: bool
    message: str
    points: int = 0
    weekly_total: int = 0
    activities: list[ProcessedActivity] = field(default_factory=list)
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "points": self.points,
            "weekly_total": self.weekly_total,
            "activities": [a.to_dict() for a in self.activities],
            "retryable": self.retryable,
        }


class SubmissionService:
    """Service turning a list of activity names into a ledger write.

    ``submit`` never raises; every failure comes back as an unsuccessful
    ``SubmissionResult``.
    """

    def __init__(self, session: AsyncSession, cache: CacheClient) -> None:
        """Initialize submission service.

        Args:
            session: Database session
            cache: Request-scoped cache client
        """
        self.session = session
        self.cache = cache
        self.directory = HouseholdDirectory(session, cache)
        self.catalog = ActivityCatalogService(session, cache)
        self.streaks = StreakService(session, cache, directory=self.directory)
        self.settings_service = StreakSettingsService(session)
        self.ledger = LedgerService(session, cache)
        self.aggregator = Aggregator(session, cache)
        self.logger = logger.bind(service="submission")

    async def submit(
        self,
        identity: str,
        activity_names: Sequence[str],
        skipped: Sequence[str] = (),
        on: date | None = None,
    ) -> SubmissionResult:
        """Score and record one submission.

        Args:
            identity: Submitting identity
            activity_names: Completed activity names
            skipped: Skipped activity names; required ones cost their points
            on: Day to record against (defaults to today)

        Returns:
            SubmissionResult with this submission's points and the updated
            weekly total for the submitter's household
        """
        identity = (identity or "").strip()
        if not identity:
            return SubmissionResult(success=False, message="No identity supplied")
        if not any(activity_names) and not any(skipped):
            return SubmissionResult(success=False, message="No activities submitted")

        day = on or dates.today()

        try:
            catalog = await self.catalog.get_cached()
            streak_settings = await self.settings_service.get_settings()
            streaks = await self.streaks.streaks_for_identity(identity, today=day)

            processed: list[ProcessedActivity] = []
            for name in activity_names:
                activity = process_activity(name, catalog, streaks, streak_settings)
                if activity is None:
                    self.logger.info("Skipping blank activity name", identity=identity)
                    continue
                processed.append(activity)

            for name in skipped:
                activity = process_skipped_activity(name, catalog)
                if activity is not None:
                    processed.append(activity)

            if not processed:
                return SubmissionResult(
                    success=False, message="No valid activities found in submission"
                )

            points = sum(a.points for a in processed)
            await self.ledger.upsert(day, identity, processed, streak_settings, total_points=points)

            members = await self.directory.resolve_members(identity)
            weekly = await self.aggregator.weekly_totals(members, today=dates.today())

        except LedgerConflictError as e:
            self.logger.warning("Submission conflicted", identity=identity, error=str(e))
            return SubmissionResult(success=False, message=str(e), retryable=True)
        except Exception as e:
            self.logger.exception("Submission failed", identity=identity, error=str(e))
            return SubmissionResult(success=False, message=f"Error processing submission: {e}")

        self.logger.info(
            "Submission recorded",
            identity=identity,
            date=day.isoformat(),
            activities=[a.name for a in processed],
            points=points,
        )
        return SubmissionResult(
            success=True,
            message=f"Successfully logged {len(processed)} activities",
            points=points,
            weekly_total=weekly.total,
            activities=processed,
        )
