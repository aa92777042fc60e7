"""Streak and summary endpoints, scoped to the current principal's household."""

from datetime import date
from typing import Annotated, Any

from litestar import Router, get
from litestar.exceptions import ValidationException
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core import dates
from activity_ledger_server.core.auth import api_key_guard
from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.services.aggregator import Aggregator, summarize
from activity_ledger_server.services.households import HouseholdDirectory
from activity_ledger_server.services.points import StreakSettingsService
from activity_ledger_server.services.streaks import StreakService


@get("/streaks", status_code=HTTP_200_OK)
async def get_streaks(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Current building and full streaks for the principal's household."""
    report = await StreakService(session, cache).streaks_for_identity(identity)
    return report.to_dict()


@get("/summary/week", status_code=HTTP_200_OK)
async def get_week_summary(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Current game week totals with daily and past-weekly averages."""
    directory = HouseholdDirectory(session, cache)
    members = await directory.resolve_members(identity)
    household_id = await directory.get_household_id(identity)

    overview = await Aggregator(session, cache).week_overview(members)
    return {
        **overview.to_dict(),
        "week_start": dates.format_ymd(dates.week_start(dates.today())),
        "household_id": household_id,
        "members": members,
    }


@get("/summary/today", status_code=HTTP_200_OK)
async def get_today_summary(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Points and distinct activities logged today, plus yesterday's recap."""
    directory = HouseholdDirectory(session, cache)
    members = await directory.resolve_members(identity)

    aggregator = Aggregator(session, cache)
    today = await aggregator.today_summary(members)
    yesterday = await aggregator.yesterday_recap(members)
    return {
        **today.to_dict(),
        "date": dates.format_ymd(dates.today()),
        "yesterday": yesterday.to_dict(),
        "household_id": await directory.get_household_id(identity),
        "members": members,
    }


@get("/summary/history", status_code=HTTP_200_OK)
async def get_history(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Full history for the household dashboard.

    Includes daily and weekly points, the moving average, current streaks,
    lifetime and previous-week activity counts, and the streak settings in
    effect.
    """
    directory = HouseholdDirectory(session, cache)
    members = await directory.resolve_members(identity)
    household_id = await directory.get_household_id(identity)

    aggregator = Aggregator(session, cache)
    history = await aggregator.history(members)
    streaks = await StreakService(session, cache, directory=directory).household_streaks(
        household_id
    )
    lifetime = await aggregator.lifetime_activity_counts(members)
    previous_week = await aggregator.previous_week_activity_counts(members)
    streak_settings = await StreakSettingsService(session).get_settings()

    return {
        **history.to_dict(),
        "streaks": streaks.to_dict(),
        "lifetime_activity_counts": lifetime.to_dict(),
        "previous_week_activity_counts": previous_week.to_dict(),
        "streak_settings": streak_settings.to_payload(),
        "household_id": household_id,
    }


@get("/summary/goals", status_code=HTTP_200_OK)
async def get_goal_status(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Weekly goals: beat last week, and double last week."""
    members = await HouseholdDirectory(session, cache).resolve_members(identity)
    status = await Aggregator(session, cache).weekly_goal_status(members)
    return status.to_dict()


@get("/summary/lifetime", status_code=HTTP_200_OK)
async def get_lifetime_counts(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """How often each catalog activity has been logged by the household."""
    members = await HouseholdDirectory(session, cache).resolve_members(identity)
    counts = await Aggregator(session, cache).lifetime_activity_counts(members)
    return counts.to_dict()


@get("/activities", status_code=HTTP_200_OK)
async def get_activities(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
    start: Annotated[date | None, Parameter(query="start")] = None,
    end: Annotated[date | None, Parameter(query="end")] = None,
) -> dict[str, Any]:
    """Decoded activities for the household between two dates.

    Defaults to the current game week. Each activity is re-scored with the
    current catalog, streaks and settings.

    Example:
        GET /api/v1/activities?start=2024-03-03&end=2024-03-09
    """
    today = dates.today()
    start = start or dates.week_start(today)
    end = end or dates.week_end(today)
    if end < start:
        raise ValidationException("end must not be before start")

    members = await HouseholdDirectory(session, cache).resolve_members(identity)
    activities = await Aggregator(session, cache).activities_in_range(start, end, members)
    return {
        "start": dates.format_ymd(start),
        "end": dates.format_ymd(end),
        "activities": [a.to_dict() for a in activities],
        "summary": summarize(activities).to_dict(),
    }


summary_router = Router(
    path="/",
    route_handlers=[
        get_streaks,
        get_week_summary,
        get_today_summary,
        get_history,
        get_goal_status,
        get_lifetime_counts,
        get_activities,
    ],
    guards=[api_key_guard],
    tags=["Summaries"],
)
