"""Points calculation and streak settings persistence."""

from dataclasses import asdict, dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.models.settings import StreakSettingsRecord
from activity_ledger_server.schemas.settings import (
    StreakBonusPoints,
    StreakSettings,
    StreakThresholds,
)
from activity_ledger_server.services.catalog import CatalogData
from activity_ledger_server.services.codec import encode_entry
from activity_ledger_server.services.streaks import StreakReport

logger = structlog.get_logger()

UNKNOWN_CATEGORY = "Uncategorized"


@dataclass
class PointsResult:
    """Breakdown of the points awarded for one activity."""

    original_points: int
    bonus_points: int = 0
    total_points: int = 0
    streak_length: int = 0
    multiplier: int = 1

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class ProcessedActivity:
    """An activity scored and ready to be written to the ledger."""

    name: str
    points: int
    category: str
    streak: PointsResult = field(default_factory=lambda: PointsResult(original_points=0))

    def encode(self, settings: StreakSettings) -> str:
        return encode_entry(
            self.name,
            self.points,
            self.streak.streak_length,
            bonus2_days=settings.thresholds.bonus2,
            multiplier_days=settings.thresholds.multiplier,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "points": self.points,
            "category": self.category,
            "streak": self.streak.to_dict(),
        }


def compute_points(
    activity_name: str,
    base_points: int,
    streak_length: int,
    settings: StreakSettings,
) -> PointsResult:
    """Apply streak rewards to an activity's base points.

    Tiers are checked highest first, so a streak that satisfies several
    thresholds only receives the highest reward. The multiplier replaces the
    flat bonus. Zero and negative activities pass through unchanged.
    """
    if base_points <= 0:
        return PointsResult(
            original_points=base_points,
            total_points=base_points,
            streak_length=streak_length,
        )

    thresholds = settings.thresholds
    bonus_points = 0
    multiplier = 1

    if streak_length >= thresholds.multiplier:
        multiplier = 2
    elif streak_length >= thresholds.bonus2:
        bonus_points = settings.bonus_points.bonus2
    elif streak_length >= thresholds.bonus1:
        bonus_points = settings.bonus_points.bonus1

    total_points = base_points * multiplier + bonus_points

    if streak_length >= thresholds.bonus1:
        logger.debug(
            "Streak applied",
            activity=activity_name,
            streak_length=streak_length,
            base_points=base_points,
            multiplier=multiplier,
            bonus_points=bonus_points,
            total_points=total_points,
        )

    return PointsResult(
        original_points=base_points,
        bonus_points=bonus_points,
        total_points=total_points,
        streak_length=streak_length,
        multiplier=multiplier,
    )


def process_activity(
    activity_name: str,
    catalog: CatalogData,
    streaks: StreakReport,
    settings: StreakSettings,
) -> ProcessedActivity | None:
    """Score one submitted activity name.

    Returns:
        The processed activity, or None for a blank name. Names missing from
        the catalog score 0 points in the ``Uncategorized`` category.
    """
    name = str(activity_name or "").strip()
    if not name:
        return None

    if name in catalog.point_values:
        base_points = catalog.point_values[name]
        category = catalog.categories.get(name) or UNKNOWN_CATEGORY
    else:
        logger.warning("Activity not found in catalog, using 0 points", activity=name)
        base_points = 0
        category = UNKNOWN_CATEGORY

    if base_points > 0:
        result = compute_points(name, base_points, streaks.length_for(name), settings)
    else:
        result = PointsResult(original_points=base_points, total_points=base_points)

    return ProcessedActivity(
        name=name,
        points=result.total_points,
        category=category,
        streak=result,
    )


def process_skipped_activity(activity_name: str, catalog: CatalogData) -> ProcessedActivity | None:
    """Score a skipped activity; only required activities cost points."""
    name = str(activity_name or "").strip()
    if not name or name not in catalog.required:
        return None

    penalty = -abs(catalog.point_values.get(name, 0))
    return ProcessedActivity(
        name=name,
        points=penalty,
        category=catalog.categories.get(name) or UNKNOWN_CATEGORY,
        streak=PointsResult(original_points=penalty, total_points=penalty),
    )


class StreakSettingsService:
    """Service for reading and updating persisted streak settings."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize settings service.

        Args:
            session: Database session
        """
        self.session = session
        self.logger = logger.bind(service="streak_settings")

    async def get_settings(self) -> StreakSettings:
        """Current settings; defaults when none are saved or the saved row is invalid."""
        try:
            record = await self.session.get(StreakSettingsRecord, 1)
        except SQLAlchemyError as e:
            self.logger.warning("Could not read streak settings, using defaults", error=str(e))
            return StreakSettings.defaults()

        if record is None:
            return StreakSettings.defaults()

        try:
            return StreakSettings(
                thresholds=StreakThresholds(
                    bonus1=record.bonus1_days,
                    bonus2=record.bonus2_days,
                    multiplier=record.multiplier_days,
                ),
                bonus_points=StreakBonusPoints(
                    bonus1=record.bonus1_points,
                    bonus2=record.bonus2_points,
                ),
            )
        except ValidationError as e:
            self.logger.warning(
                "Saved streak settings are invalid, using defaults",
                error=str(e),
                record=repr(record),
            )
            return StreakSettings.defaults()

    async def update_settings(self, payload: dict[str, Any] | StreakSettings) -> StreakSettings:
        """Validate and persist new settings.

        Raises:
            ValueError: If the payload is malformed or thresholds are not
                strictly increasing
        """
        if isinstance(payload, StreakSettings):
            new_settings = payload
        else:
            if not isinstance(payload, dict):
                raise ValueError("Invalid settings data format")
            try:
                new_settings = StreakSettings.from_payload(payload)
            except ValidationError as e:
                raise ValueError(f"Invalid streak settings: {e}") from e

        record = await self.session.get(StreakSettingsRecord, 1)
        if record is None:
            record = StreakSettingsRecord(id=1)
            self.session.add(record)

        record.bonus1_days = new_settings.thresholds.bonus1
        record.bonus2_days = new_settings.thresholds.bonus2
        record.multiplier_days = new_settings.thresholds.multiplier
        record.bonus1_points = new_settings.bonus_points.bonus1
        record.bonus2_points = new_settings.bonus_points.bonus2

        await self.session.commit()

        self.logger.info("Streak settings saved", settings=new_settings.to_payload())
        return new_settings
