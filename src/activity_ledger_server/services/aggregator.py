"""Summaries over ledger rows: weekly totals, history, goals and recaps.

Every aggregation is scoped to a member list (a household, or a single
identity). Date-ranged reads go through the ledger range cache.
"""

import math
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core import dates
from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.core.config import settings as app_settings
from activity_ledger_server.schemas.settings import StreakSettings
from activity_ledger_server.services.catalog import ActivityCatalogService, CatalogData
from activity_ledger_server.services.codec import count_entries, decode_entries
from activity_ledger_server.services.ledger import LedgerService, LedgerSnapshot
from activity_ledger_server.services.points import (
    PointsResult,
    StreakSettingsService,
    process_activity,
)
from activity_ledger_server.services.streaks import StreakReport, StreakService

logger = structlog.get_logger()

TOTAL_POSITIVE = "Total Positive"
TOTAL_NEGATIVE = "Total Negative"
NO_ACTIVITY = "None"

WEEKDAY_KEYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positives (``2.25`` -> ``2.3``)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def calculate_percentage(current: int, target: int) -> int:
    """Goal completion percentage clamped to 0..100.

    A target of zero or less counts as complete once ``current`` is positive.
    """
    if target <= 0:
        return 100 if current > 0 else 0
    return int(min(100, max(0, round_half_up(current / target * 100))))


def empty_categories(categories: Iterable[str] | None = None) -> dict[str, int]:
    tallies = {name: 0 for name in (categories or app_settings.categories)}
    tallies[TOTAL_POSITIVE] = 0
    tallies[TOTAL_NEGATIVE] = 0
    return tallies


def top_activity(counts: dict[str, int]) -> tuple[str, int]:
    """Most frequent name; the first name to reach the maximum wins ties."""
    best_name, best_count = NO_ACTIVITY, 0
    for name, count in counts.items():
        if count > best_count:
            best_name, best_count = name, count
    return best_name, best_count


@dataclass
class WeeklySummary:
    total: int = 0
    positive: int = 0
    negative: int = 0
    top_activity: str = NO_ACTIVITY
    top_activity_count: int = 0
    categories: dict[str, int] = field(default_factory=empty_categories)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ActivityRecord:
    """One decoded activity, re-scored with the current catalog and settings."""

    name: str
    points: int
    date: date
    identity: str
    category: str
    streak: PointsResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "points": self.points,
            "date": self.date.isoformat(),
            "identity": self.identity,
            "category": self.category,
            "streak": self.streak.to_dict(),
        }


@dataclass
class ActivityCounts:
    """Occurrences per catalog activity, plus whether anything matched."""

    counts: dict[str, dict[str, Any]] = field(default_factory=dict)
    has_data: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"counts": self.counts, "has_data": self.has_data}


@dataclass
class TodaySummary:
    points: int = 0
    activities: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class YesterdayRecap:
    """Yesterday's points (None when nothing was logged) and entry count."""

    points: int | None = None
    activity_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class WeekOverview:
    summary: WeeklySummary
    daily_average: float = 0.0
    weekly_average: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.summary.to_dict(),
            "daily_average": self.daily_average,
            "weekly_average": self.weekly_average,
        }


@dataclass
class HistoryReport:
    daily: list[dict[str, Any]] = field(default_factory=list)
    weekly: list[dict[str, Any]] = field(default_factory=list)
    moving_averages: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class GoalProgress:
    description: str
    achieved: bool = False
    target: int = 0
    current: int = 0
    percent_complete: int = 0


@dataclass
class GoalStatus:
    higher_than_previous: GoalProgress
    double_points: GoalProgress
    previous_week_start: str | None = None
    current_week_start: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def summarize(
    activities: Iterable[ActivityRecord],
    categories: Iterable[str] | None = None,
) -> WeeklySummary:
    """Summary of decoded activities; sign follows final points (0 is positive)."""
    summary = WeeklySummary(categories=empty_categories(categories))
    counts: dict[str, int] = {}

    for activity in activities:
        summary.total += activity.points
        if activity.points >= 0:
            summary.positive += 1
        else:
            summary.negative += 1
        if activity.category in summary.categories and activity.category not in (
            TOTAL_POSITIVE,
            TOTAL_NEGATIVE,
        ):
            summary.categories[activity.category] += 1
        counts[activity.name] = counts.get(activity.name, 0) + 1

    summary.categories[TOTAL_POSITIVE] = summary.positive
    summary.categories[TOTAL_NEGATIVE] = summary.negative
    summary.top_activity, summary.top_activity_count = top_activity(counts)
    return summary


def moving_averages(daily: list[dict[str, Any]], window: int) -> list[dict[str, Any]]:
    """Trailing average of daily points; None until the window is full."""
    window = max(1, int(window))
    averages = []
    for i, day in enumerate(daily):
        average = None
        if i >= window - 1:
            total = sum(d["points"] for d in daily[i - window + 1 : i + 1])
            average = round_half_up(total / window, 1)
        averages.append({"date": day["date"], "average": average})
    return averages


def weekly_totals_by_start(rows: Iterable[LedgerSnapshot]) -> dict[date, int]:
    totals: dict[date, int] = {}
    for row in rows:
        start = dates.week_start(row.date)
        totals[start] = totals.get(start, 0) + row.total_points
    return totals


class Aggregator:
    """Service computing ledger summaries for a set of members."""

    def __init__(self, session: AsyncSession, cache: CacheClient) -> None:
        """Initialize aggregator.

        Args:
            session: Database session
            cache: Request-scoped cache client
        """
        self.session = session
        self.cache = cache
        self.ledger = LedgerService(session, cache)
        self.catalog = ActivityCatalogService(session, cache)
        self.streaks = StreakService(session, cache)
        self.settings_service = StreakSettingsService(session)
        self.logger = logger.bind(service="aggregator")

    async def weekly_totals(self, members: list[str], today: date | None = None) -> WeeklySummary:
        """Totals for the current game week (Sunday..Saturday).

        Points and positive/negative counts come from the stored row values;
        top activity and category tallies come from decoding the tokens.
        """
        if not members:
            self.logger.info("No members given for weekly totals")
            return WeeklySummary()

        today = today or dates.today()
        rows = await self.ledger.rows_in_range(
            dates.week_start(today), dates.week_end(today), members=members
        )
        catalog = await self.catalog.get_cached()
        return self._summarize_rows(rows, catalog)

    def _summarize_rows(self, rows: list[LedgerSnapshot], catalog: CatalogData) -> WeeklySummary:
        summary = WeeklySummary()
        counts: dict[str, int] = {}

        for row in rows:
            summary.total += row.total_points
            summary.positive += row.positive_count
            summary.negative += row.negative_count

            for entry in decode_entries(row.encoded_activities):
                counts[entry.name] = counts.get(entry.name, 0) + 1
                category = catalog.categories.get(entry.name)
                if category and category in summary.categories:
                    summary.categories[category] += 1

        summary.categories[TOTAL_POSITIVE] = summary.positive
        summary.categories[TOTAL_NEGATIVE] = summary.negative
        summary.top_activity, summary.top_activity_count = top_activity(counts)
        return summary

    async def activities_in_range(
        self,
        start: date,
        end: date,
        members: list[str] | None = None,
        streaks: StreakReport | None = None,
        streak_settings: StreakSettings | None = None,
    ) -> list[ActivityRecord]:
        """Decode every activity logged between ``start`` and ``end``.

        Each activity is re-scored with the current catalog, the current
        streaks and the current settings, so points may differ from what the
        token recorded.
        """
        rows = await self.ledger.rows_in_range(start, end, members=members)
        if not rows:
            return []

        catalog = await self.catalog.get_cached()
        if streaks is None:
            streaks = (
                await self.streaks.member_streaks(members)
                if members is not None
                else await self.streaks.global_streaks()
            )
        if streak_settings is None:
            streak_settings = await self.settings_service.get_settings()

        records = []
        for row in rows:
            for entry in decode_entries(row.encoded_activities):
                processed = process_activity(entry.name, catalog, streaks, streak_settings)
                if processed is None:
                    continue
                records.append(
                    ActivityRecord(
                        name=processed.name,
                        points=processed.points,
                        date=row.date,
                        identity=row.submitter_identity,
                        category=processed.category,
                        streak=processed.streak,
                    )
                )

        self.logger.debug(
            "Activities decoded",
            start=start.isoformat(),
            end=end.isoformat(),
            rows=len(rows),
            activities=len(records),
        )
        return records

    def _initial_counts(self, catalog: CatalogData) -> dict[str, dict[str, Any]]:
        return {
            name: {"count": 0, "positive": points >= 0}
            for name, points in catalog.point_values.items()
        }

    def _count_rows(self, rows: list[LedgerSnapshot], catalog: CatalogData) -> ActivityCounts:
        result = ActivityCounts(counts=self._initial_counts(catalog))
        for row in rows:
            for entry in decode_entries(row.encoded_activities):
                if entry.name in result.counts:
                    result.counts[entry.name]["count"] += 1
                    result.has_data = True
        return result

    async def lifetime_activity_counts(self, members: list[str]) -> ActivityCounts:
        """Occurrences of each catalog activity across all history."""
        catalog = await self.catalog.get_cached()
        if not members:
            return ActivityCounts(counts=self._initial_counts(catalog))
        rows = await self.ledger.all_rows(members=members)
        return self._count_rows(rows, catalog)

    async def previous_week_activity_counts(
        self, members: list[str], today: date | None = None
    ) -> ActivityCounts:
        """Occurrences of each catalog activity in the previous game week."""
        catalog = await self.catalog.get_cached()
        if not members:
            return ActivityCounts(counts=self._initial_counts(catalog))

        today = today or dates.today()
        start = dates.week_start(today) - timedelta(days=7)
        rows = await self.ledger.rows_in_range(start, start + timedelta(days=6), members=members)
        return self._count_rows(rows, catalog)

    async def today_summary(self, members: list[str], today: date | None = None) -> TodaySummary:
        """Points logged today and each distinct activity (first occurrence's points)."""
        if not members:
            return TodaySummary()

        today = today or dates.today()
        rows = await self.ledger.rows_in_range(today, today, members=members)

        summary = TodaySummary()
        seen: set[str] = set()
        for row in rows:
            summary.points += row.total_points
            for entry in decode_entries(row.encoded_activities):
                if entry.name not in seen:
                    seen.add(entry.name)
                    summary.activities.append({"name": entry.name, "points": entry.points})
        return summary

    async def yesterday_recap(
        self, members: list[str] | None, today: date | None = None
    ) -> YesterdayRecap:
        """Yesterday's points and token count; points stay None without rows.

        An empty member list includes every submitter.
        """
        yesterday = (today or dates.today()) - timedelta(days=1)
        rows = await self.ledger.rows_in_range(yesterday, yesterday, members=members or None)
        if not rows:
            return YesterdayRecap()

        return YesterdayRecap(
            points=sum(r.total_points for r in rows),
            activity_count=sum(count_entries(r.encoded_activities) for r in rows),
        )

    async def history(self, members: list[str]) -> HistoryReport:
        """Daily and weekly points over all history, with a moving average."""
        if not members:
            return HistoryReport()

        rows = await self.ledger.all_rows(members=members)

        daily_map: dict[date, dict[str, Any]] = {}
        for row in rows:
            day = daily_map.setdefault(
                row.date,
                {"date": row.date, "points": 0, "positive_count": 0, "negative_count": 0},
            )
            day["points"] += row.total_points
            day["positive_count"] += row.positive_count
            day["negative_count"] += row.negative_count

        daily = [daily_map[d] for d in sorted(daily_map)]

        weekly_map: dict[date, dict[str, Any]] = {}
        for day in daily:
            start = dates.week_start(day["date"])
            week = weekly_map.setdefault(
                start,
                {
                    "start_date": dates.format_ymd(start),
                    "total_points": 0,
                    "positive_count": 0,
                    "negative_count": 0,
                    "daily_breakdown": {key: 0 for key in WEEKDAY_KEYS},
                },
            )
            week["total_points"] += day["points"]
            week["positive_count"] += day["positive_count"]
            week["negative_count"] += day["negative_count"]
            week["daily_breakdown"][WEEKDAY_KEYS[(day["date"].weekday() + 1) % 7]] += day["points"]

        for day in daily:
            day["date"] = dates.format_ymd(day["date"])

        return HistoryReport(
            daily=daily,
            weekly=[weekly_map[s] for s in sorted(weekly_map)],
            moving_averages=moving_averages(daily, app_settings.moving_average_window),
        )

    async def week_overview(self, members: list[str], today: date | None = None) -> WeekOverview:
        """Current week summary with daily and past-weekly averages."""
        today = today or dates.today()
        summary = await self.weekly_totals(members, today)
        overview = WeekOverview(summary=summary)
        if not members:
            return overview

        if summary.total != 0:
            days_elapsed = min(7, (today - dates.week_start(today)).days + 1)
            overview.daily_average = round_half_up(summary.total / days_elapsed, 1)

        current_start = dates.week_start(today)
        past = {
            start: total
            for start, total in weekly_totals_by_start(
                await self.ledger.all_rows(members=members)
            ).items()
            if start < current_start
        }
        if past:
            overview.weekly_average = round_half_up(sum(past.values()) / len(past), 1)
        return overview

    async def weekly_goal_status(self, members: list[str], today: date | None = None) -> GoalStatus:
        """Progress of the running week against the most recent earlier week with data."""
        status = GoalStatus(
            higher_than_previous=GoalProgress(
                description="Higher point total this week than last week"
            ),
            double_points=GoalProgress(description="Double last week's point total this week"),
        )
        if not members:
            return status

        today = today or dates.today()
        current_start = dates.week_start(today)
        totals = weekly_totals_by_start(await self.ledger.all_rows(members=members))

        current_total = totals.get(current_start, 0)
        earlier = [start for start in totals if start < current_start]
        status.current_week_start = dates.format_ymd(current_start)
        status.higher_than_previous.current = current_total
        status.double_points.current = current_total

        if not earlier:
            status.higher_than_previous.description = (
                "Score more points than last week (no previous week data)"
            )
            status.double_points.description = "Double last week's points (no previous week data)"
            return status

        previous_start = max(earlier)
        previous_total = totals[previous_start]
        status.previous_week_start = dates.format_ymd(previous_start)

        higher = status.higher_than_previous
        higher.target = previous_total
        higher.achieved = current_total > previous_total
        higher.percent_complete = calculate_percentage(current_total, previous_total)

        double = status.double_points
        double.target = previous_total * 2
        double.achieved = (previous_total > 0 and current_total >= double.target) or (
            previous_total <= 0 and current_total > 0
        )
        double.percent_complete = calculate_percentage(current_total, double.target)

        self.logger.debug(
            "Goal status computed",
            current_total=current_total,
            previous_total=previous_total,
            higher=higher.achieved,
            double=double.achieved,
        )
        return status
