"""Catalog and streak settings administration endpoints."""

import csv
import io
from typing import Any

from litestar import Request, Router, get, post, put
from litestar.exceptions import ValidationException
from litestar.status_codes import HTTP_200_OK
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core.auth import api_key_guard
from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.core.config import settings
from activity_ledger_server.schemas.ledger import ActivityDefinitionPayload
from activity_ledger_server.services.catalog import (
    ActivityCatalogService,
    CatalogData,
    DefinitionInput,
)
from activity_ledger_server.services.points import StreakSettingsService


def catalog_response(catalog: CatalogData) -> dict[str, Any]:
    return {
        "activities": [
            {
                "name": name,
                "points": points,
                "category": catalog.categories[name],
                "required": name in catalog.required,
            }
            for name, points in catalog.point_values.items()
        ],
        "categories": list(settings.categories),
    }


@get("/config/activities", status_code=HTTP_200_OK)
async def get_activity_definitions(
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Activity catalog, ordered by category then name."""
    definitions = await ActivityCatalogService(session, cache).list_definitions()
    return {
        "activities": [
            {
                "name": d.name,
                "points": d.points,
                "category": d.category,
                "required": d.required,
            }
            for d in definitions
        ],
        "categories": list(settings.categories),
    }


@put("/config/activities", status_code=HTTP_200_OK)
async def replace_activity_definitions(
    data: list[ActivityDefinitionPayload],
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Replace the whole activity catalog."""
    service = ActivityCatalogService(session, cache)
    try:
        catalog = await service.save_definitions(
            DefinitionInput(
                name=d.name.strip(),
                points=d.points,
                category=d.category.strip(),
                required=d.required,
            )
            for d in data
        )
    except ValueError as e:
        raise ValidationException(str(e)) from e
    return catalog_response(catalog)


@post("/config/activities/import", status_code=HTTP_200_OK)
async def import_activity_definitions(
    request: Request[Any, Any, Any],
    session: AsyncSession,
    cache: CacheClient,
) -> dict[str, Any]:
    """Replace the catalog from an uploaded CSV body.

    Expects a header row with ``name`` (or ``activity``), ``points``,
    ``category`` and optionally ``required`` columns. Invalid rows are
    skipped.

    Example:
        POST /api/v1/config/activities/import
        Content-Type: text/csv

        name,points,category,required
        Exercise for 30 minutes,3,Health,false
    """
    body = await request.body()
    try:
        text = body.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValidationException("CSV body must be UTF-8") from e

    rows = list(csv.DictReader(io.StringIO(text)))
    if not rows:
        raise ValidationException("CSV body has no data rows")

    service = ActivityCatalogService(session, cache)
    try:
        catalog = await service.import_rows(rows)
    except ValueError as e:
        raise ValidationException(str(e)) from e
    return catalog_response(catalog)


@get("/config/streak-settings", status_code=HTTP_200_OK)
async def get_streak_settings(session: AsyncSession) -> dict[str, Any]:
    """Streak thresholds and bonus points currently in effect."""
    streak_settings = await StreakSettingsService(session).get_settings()
    return streak_settings.to_payload()


@put("/config/streak-settings", status_code=HTTP_200_OK)
async def update_streak_settings(
    data: dict[str, Any],
    session: AsyncSession,
) -> dict[str, Any]:
    """Save new streak settings.

    Thresholds must satisfy ``bonus1 < bonus2 < multiplier``. Uppercase
    ``BONUS_1``/``BONUS_2``/``MULTIPLIER`` keys are accepted.

    Example:
        PUT /api/v1/config/streak-settings
        {"thresholds": {"bonus1": 3, "bonus2": 7, "multiplier": 14},
         "bonusPoints": {"bonus1": 1, "bonus2": 2}}
    """
    try:
        saved = await StreakSettingsService(session).update_settings(data)
    except ValueError as e:
        raise ValidationException(str(e)) from e
    return saved.to_payload()


config_router = Router(
    path="/",
    route_handlers=[
        get_activity_definitions,
        replace_activity_definitions,
        import_activity_definitions,
        get_streak_settings,
        update_streak_settings,
    ],
    guards=[api_key_guard],
    tags=["Configuration"],
)
