"""Ledger export, activity log and maintenance endpoints."""

import csv
import io
from datetime import timedelta
from typing import Annotated, Any

from litestar import Response, Router, delete, get, post
from litestar.exceptions import ValidationException
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.api.submissions import submission_response
from activity_ledger_server.core import dates
from activity_ledger_server.core.auth import api_key_guard
from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.schemas.ledger import BackfillRequest
from activity_ledger_server.services.households import HouseholdDirectory
from activity_ledger_server.services.ledger import LedgerService
from activity_ledger_server.services.submission import SubmissionService


@get("/ledger/export.csv", status_code=HTTP_200_OK)
async def export_ledger_csv(
    session: AsyncSession,
    cache: CacheClient,
    display: Annotated[bool, Parameter(query="display", default=False)] = False,
) -> Response[bytes]:
    """Export every ledger row as CSV in positional column order.

    Args:
        session: Database session (injected)
        cache: Cache client (injected)
        display: Format dates as MM/DD/YYYY and points with a sign

    Example:
        GET /api/v1/ledger/export.csv?display=true
    """
    rows = await LedgerService(session, cache).export_rows(display=display)

    output = io.StringIO()
    writer = csv.writer(output)
    for row in rows:
        writer.writerow(row)

    return Response(
        content=output.getvalue().encode("utf-8"),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=ledger.csv"},
    )


@get("/ledger/log", status_code=HTTP_200_OK)
async def get_activity_log(
    identity: str,
    session: AsyncSession,
    cache: CacheClient,
    days: Annotated[int, Parameter(query="days", default=7, ge=1, le=365)] = 7,
) -> list[dict[str, Any]]:
    """Recently scored activities for the household, newest first."""
    end = dates.today()
    start = end - timedelta(days=days - 1)
    members = await HouseholdDirectory(session, cache).resolve_members(identity)
    events = await LedgerService(session, cache).activity_log(start, end, members=members)

    return [
        {
            "id": e.id,
            "date": e.date.isoformat(),
            "identity": e.submitter_identity,
            "activity": e.activity_name,
            "category": e.category,
            "base_points": e.base_points,
            "bonus_points": e.bonus_points,
            "multiplier": e.multiplier,
            "streak_length": e.streak_length,
            "points": e.final_points,
            "recorded_at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in events
    ]


@post("/ledger/entries")
async def backfill_entry(
    data: BackfillRequest,
    session: AsyncSession,
    cache: CacheClient,
) -> Response[dict[str, Any]]:
    """Record activities for an identity on a past day.

    Example:
        POST /api/v1/ledger/entries
        {"identity": "sam@example.com", "date": "2024-03-04", "activities": ["Read"]}
    """
    if data.date > dates.today():
        raise ValidationException("Cannot record entries for a future date")

    result = await SubmissionService(session, cache).submit(
        data.identity, data.activities, skipped=data.skipped, on=data.date
    )
    return submission_response(result)


@delete("/ledger", status_code=HTTP_200_OK)
async def clear_ledger(session: AsyncSession, cache: CacheClient) -> dict[str, int]:
    """Delete every ledger row and event.

    Guarded by the API key only. When ``API_KEY`` is unset this endpoint is
    open to any caller that can reach the server.
    """
    removed = await LedgerService(session, cache).clear()
    return {"deleted_rows": removed}


ledger_router = Router(
    path="/",
    route_handlers=[export_ledger_csv, get_activity_log, backfill_entry, clear_ledger],
    guards=[api_key_guard],
    tags=["Ledger"],
)
