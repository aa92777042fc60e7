"""Activity catalog: base points and categories per activity name."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_ledger_server.core.cache import ACTIVITY_DATA_KEY, CacheClient
from activity_ledger_server.models.activity_definition import ActivityDefinition

logger = structlog.get_logger()

# Accepted header spellings for imported catalog rows
_NAME_KEYS = ("name", "activity")
_POINTS_KEYS = ("points", "base_points")
_CATEGORY_KEYS = ("category",)
_REQUIRED_KEYS = ("required",)

_TRUE_VALUES = {"true", "yes", "y", "1", "x"}


@dataclass
class CatalogData:
    """Validated catalog lookups."""

    point_values: dict[str, int] = field(default_factory=dict)
    categories: dict[str, str] = field(default_factory=dict)
    required: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not self.point_values

    def to_dict(self) -> dict[str, Any]:
        return {
            "point_values": dict(self.point_values),
            "categories": dict(self.categories),
            "required": sorted(self.required),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CatalogData | None":
        """Rebuild from a cached payload; None when the payload is malformed."""
        if not isinstance(data, dict):
            return None
        point_values = data.get("point_values")
        categories = data.get("categories")
        if not isinstance(point_values, dict) or not isinstance(categories, dict):
            return None
        try:
            return cls(
                point_values={str(k): int(v) for k, v in point_values.items()},
                categories={str(k): str(v) for k, v in categories.items()},
                required=set(data.get("required") or []),
            )
        except (TypeError, ValueError):
            return None


@dataclass
class DefinitionInput:
    """An activity definition as submitted by a client."""

    name: str
    points: int
    category: str
    required: bool = False


def _coerce_points(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(number) if number.is_integer() else None
    return None


def build_catalog(rows: Iterable[Any]) -> CatalogData:
    """Validate definition rows into catalog lookups.

    Rows with a blank name, blank category or non-numeric points are skipped
    with a warning. When a name appears twice the first row wins.

    Args:
        rows: Objects with ``name``, ``points``, ``category`` and optionally
            ``required`` attributes
    """
    catalog = CatalogData()
    for index, row in enumerate(rows):
        name = str(getattr(row, "name", "") or "").strip()
        category = str(getattr(row, "category", "") or "").strip()
        points = _coerce_points(getattr(row, "points", None))

        if not name or not category or points is None:
            logger.warning(
                "Skipping invalid catalog row",
                row=index,
                name=name,
                category=category,
                points=repr(getattr(row, "points", None)),
            )
            continue

        if name in catalog.point_values:
            logger.warning(
                "Duplicate activity in catalog, keeping first",
                row=index,
                name=name,
                kept_points=catalog.point_values[name],
                ignored_points=points,
            )
            continue

        catalog.point_values[name] = points
        catalog.categories[name] = category
        if getattr(row, "required", False):
            catalog.required.add(name)

    return catalog


def _pick(row: dict[str, Any], keys: Sequence[str]) -> Any:
    lowered = {str(k).strip().lower(): v for k, v in row.items()}
    for key in keys:
        if key in lowered:
            return lowered[key]
    return None


def _is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUE_VALUES


def definitions_from_rows(rows: Iterable[dict[str, Any] | Sequence[Any]]) -> list[DefinitionInput]:
    """Turn raw tabular rows into definitions, applying catalog validation.

    Dict rows are matched by header (``name``/``activity``, ``points``,
    ``category``, ``required``, case-insensitive). Sequence rows are read
    positionally in that order.
    """
    staged: list[DefinitionInput] = []
    for row in rows:
        if isinstance(row, dict):
            name = _pick(row, _NAME_KEYS)
            points = _pick(row, _POINTS_KEYS)
            category = _pick(row, _CATEGORY_KEYS)
            required = _pick(row, _REQUIRED_KEYS)
        else:
            values = list(row) + [None] * 4
            name, points, category, required = values[:4]

        staged.append(
            DefinitionInput(
                name=str(name or "").strip(),
                points=_coerce_points(points),  # type: ignore[arg-type]
                category=str(category or "").strip(),
                required=_is_truthy(required),
            )
        )

    catalog = build_catalog(staged)
    return [
        DefinitionInput(
            name=name,
            points=points,
            category=catalog.categories[name],
            required=name in catalog.required,
        )
        for name, points in catalog.point_values.items()
    ]


class ActivityCatalogService:
    """Service for loading, caching and replacing the activity catalog."""

    def __init__(self, session: AsyncSession, cache: CacheClient) -> None:
        """Initialize catalog service.

        Args:
            session: Database session
            cache: Request-scoped cache client
        """
        self.session = session
        self.cache = cache
        self.logger = logger.bind(service="catalog")

    async def load(self) -> CatalogData:
        """Read and validate every definition row.

        Never raises: a missing table, an empty table or a failed read all
        produce an empty catalog.
        """
        try:
            result = await self.session.execute(
                select(ActivityDefinition).order_by(ActivityDefinition.id.asc())
            )
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.warning("Activity catalog unavailable", error=str(e))
            return CatalogData()

        if not rows:
            self.logger.warning("Activity catalog is empty")
            return CatalogData()

        catalog = build_catalog(rows)
        self.logger.debug("Activity catalog loaded", activities=len(catalog.point_values))
        return catalog

    async def get_cached(self) -> CatalogData:
        """Catalog from the local tier, then the shared tier, then the store.

        A shared entry that is malformed or empty is evicted. Only a non-empty
        catalog is written back to the caches.
        """
        local = self.cache.get_local(ACTIVITY_DATA_KEY)
        if isinstance(local, CatalogData):
            return local

        cached = await self.cache.get_json(ACTIVITY_DATA_KEY)
        if cached is not None:
            catalog = CatalogData.from_dict(cached)
            if catalog is not None and not catalog.is_empty():
                self.cache.set_local(ACTIVITY_DATA_KEY, catalog)
                return catalog
            self.logger.warning("Evicting invalid cached catalog")
            await self.cache.delete(ACTIVITY_DATA_KEY)

        catalog = await self.load()
        if not catalog.is_empty():
            self.cache.set_local(ACTIVITY_DATA_KEY, catalog)
            await self.cache.set_json(ACTIVITY_DATA_KEY, catalog.to_dict())
        return catalog

    async def reset_cache(self) -> None:
        """Drop the catalog from both cache tiers."""
        await self.cache.delete(ACTIVITY_DATA_KEY)
        self.logger.info("Activity catalog cache reset")

    async def list_definitions(self) -> list[ActivityDefinition]:
        result = await self.session.execute(
            select(ActivityDefinition).order_by(
                ActivityDefinition.category.asc(), ActivityDefinition.name.asc()
            )
        )
        return list(result.scalars().all())

    async def save_definitions(self, definitions: Iterable[DefinitionInput]) -> CatalogData:
        """Replace every definition.

        Definitions are stored sorted by category then name. The cache is
        dropped before the write and again after the commit so no reader
        keeps serving the old catalog.

        Raises:
            ValueError: If no valid definition remains after validation
        """
        catalog = build_catalog(definitions)
        if catalog.is_empty():
            raise ValueError("No valid activity definitions provided")

        await self.reset_cache()

        ordered = sorted(catalog.point_values, key=lambda n: (catalog.categories[n], n))
        await self.session.execute(delete(ActivityDefinition))
        self.session.add_all(
            ActivityDefinition(
                name=name,
                points=catalog.point_values[name],
                category=catalog.categories[name],
                required=name in catalog.required,
            )
            for name in ordered
        )
        await self.session.commit()

        await self.reset_cache()

        self.logger.info("Activity catalog saved", activities=len(ordered))
        return catalog

    async def import_rows(self, rows: Iterable[dict[str, Any] | Sequence[Any]]) -> CatalogData:
        """Replace the catalog from raw tabular rows (for example a CSV upload)."""
        return await self.save_definitions(definitions_from_rows(rows))
