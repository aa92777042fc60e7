"""Tests for ledger upserts and reads."""

from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from activity_ledger_server.core.cache import CacheClient
from activity_ledger_server.models.base import Base
from activity_ledger_server.models.ledger import LEDGER_COLUMNS, LedgerEvent, LedgerRow
from activity_ledger_server.schemas.settings import StreakSettings
from activity_ledger_server.services.ledger import LedgerConflictError, LedgerService
from activity_ledger_server.services.points import PointsResult, ProcessedActivity

DAY = date(2024, 3, 13)
ALEX = "alex@example.com"
SAM = "sam@example.com"


def activity(
    name: str, points: int, original: int | None = None, streak: int = 0
) -> ProcessedActivity:
    original = points if original is None else original
    return ProcessedActivity(
        name=name,
        points=points,
        category="Health",
        streak=PointsResult(original_points=original, total_points=points, streak_length=streak),
    )


@pytest.fixture
def streak_settings() -> StreakSettings:
    return StreakSettings.defaults()


class TestUpsert:
    """Tests for inserting and merging ledger rows."""

    @pytest.mark.asyncio
    async def test_first_submission_inserts_row(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        row = await service.upsert(
            DAY,
            "alex@example.com",
            [activity("Exercise", 4, original=3, streak=3), activity("Soda", -2)],
            streak_settings,
        )

        assert row.total_points == 2
        assert row.encoded_activities == "➕ Exercise (🔥3) (+4), ➖ Soda (-2)"
        assert row.positive_count == 1
        assert row.negative_count == 1
        assert row.week_number == 11
        assert row.identity_key == "alex@example.com"

    @pytest.mark.asyncio
    async def test_second_submission_merges(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        await service.upsert(DAY, "Alex@Example.com", [activity("Exercise", 3)], streak_settings)
        row = await service.upsert(
            DAY, "alex@example.com", [activity("Read", 2), activity("Soda", -2)], streak_settings
        )

        assert row.total_points == 3
        assert row.encoded_activities == "➕ Exercise (+3), ➕ Read (+2), ➖ Soda (-2)"
        assert row.positive_count == 2
        assert row.negative_count == 1
        # Identity as first written
        assert row.submitter_identity == "Alex@Example.com"

        count = await async_session.scalar(select(func.count()).select_from(LedgerRow))
        assert count == 1

    @pytest.mark.asyncio
    async def test_sequential_submissions_match_single_submission(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        first = activity("Exercise", 4, original=3, streak=3)
        second = activity("Soda", -2)
        service = LedgerService(async_session, cache)

        await service.upsert(DAY, ALEX, [first], streak_settings)
        split = await service.upsert(DAY, ALEX, [second], streak_settings)
        combined = await service.upsert(DAY, SAM, [first, second], streak_settings)

        assert split.total_points == combined.total_points == 2
        assert split.encoded_activities == combined.encoded_activities
        assert split.positive_count == combined.positive_count == 1
        assert split.negative_count == combined.negative_count == 1

    @pytest.mark.asyncio
    async def test_counters_use_original_sign(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        row = await service.upsert(
            DAY,
            "alex@example.com",
            [activity("Mystery", 0), activity("Exercise", 6, original=3, streak=14)],
            streak_settings,
        )
        assert row.positive_count == 1
        assert row.negative_count == 0

    @pytest.mark.asyncio
    async def test_explicit_total_points(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        row = await LedgerService(async_session, cache).upsert(
            DAY, "alex@example.com", [activity("Exercise", 3)], streak_settings, total_points=10
        )
        assert row.total_points == 10

    @pytest.mark.asyncio
    async def test_events_recorded_per_activity(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        await service.upsert(
            DAY,
            "alex@example.com",
            [activity("Exercise", 4, original=3, streak=3), activity("Soda", -2)],
            streak_settings,
        )

        events = await service.activity_log(DAY, DAY, members=["ALEX@example.com"])
        assert {(e.activity_name, e.base_points, e.final_points) for e in events} == {
            ("Exercise", 3, 4),
            ("Soda", -2, -2),
        }
        assert await service.activity_log(DAY, DAY, members=["sam@example.com"]) == []

    @pytest.mark.asyncio
    async def test_invalid_arguments(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        with pytest.raises(ValueError):
            await service.upsert(DAY, " ", [activity("Exercise", 3)], streak_settings)
        with pytest.raises(ValueError):
            await service.upsert(DAY, "alex@example.com", [], streak_settings)

    @pytest.mark.asyncio
    async def test_persistent_conflict_raises(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings, monkeypatch
    ):
        service = LedgerService(async_session, cache, max_retries=2)
        attempts = 0

        async def always_stale(*args, **kwargs):
            nonlocal attempts
            attempts += 1
            raise StaleDataError("row changed")

        monkeypatch.setattr(service, "_merge", always_stale)

        with pytest.raises(LedgerConflictError) as exc_info:
            await service.upsert(
                DAY, "alex@example.com", [activity("Exercise", 3)], streak_settings
            )

        assert attempts == 2
        assert exc_info.value.retryable
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_write_bumps_generation(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        before = await cache.ledger_generation()
        await service.upsert(DAY, "alex@example.com", [activity("Exercise", 3)], streak_settings)
        assert await cache.ledger_generation() != before


class TestConcurrentUpserts:
    """Two sessions racing on one (date, identity) row."""

    @pytest.fixture
    async def file_engine(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
        await engine.dispose()

    async def _race(self, file_engine, cache_store, monkeypatch, seed_first: bool) -> LedgerRow:
        maker = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
        settings = StreakSettings.defaults()

        async with maker() as session:
            service = LedgerService(session, CacheClient(store=cache_store, version="test"))
            if seed_first:
                await service.upsert(DAY, "alex@example.com", [activity("Walk", 1)], settings)

            original_merge = service._merge
            raced = False

            async def merge_then_race(*args, **kwargs):
                nonlocal raced
                row = await original_merge(*args, **kwargs)
                if not raced:
                    raced = True
                    async with maker() as other:
                        await LedgerService(
                            other, CacheClient(store=cache_store, version="test")
                        ).upsert(DAY, "alex@example.com", [activity("Read", 2)], settings)
                return row

            monkeypatch.setattr(service, "_merge", merge_then_race)
            await service.upsert(DAY, "alex@example.com", [activity("Exercise", 3)], settings)

        async with maker() as session:
            rows = (await session.execute(select(LedgerRow))).scalars().all()
            assert len(rows) == 1
            return rows[0]

    @pytest.mark.asyncio
    async def test_racing_insert_retries_and_merges(self, file_engine, cache_store, monkeypatch):
        row = await self._race(file_engine, cache_store, monkeypatch, seed_first=False)

        assert row.total_points == 5
        assert row.encoded_activities == "➕ Read (+2), ➕ Exercise (+3)"
        assert row.positive_count == 2

    @pytest.mark.asyncio
    async def test_stale_update_retries_and_merges(self, file_engine, cache_store, monkeypatch):
        row = await self._race(file_engine, cache_store, monkeypatch, seed_first=True)

        assert row.total_points == 6
        assert row.encoded_activities == "➕ Walk (+1), ➕ Read (+2), ➕ Exercise (+3)"
        assert row.positive_count == 3


class TestReads:
    """Tests for range reads, export and clear."""

    @pytest.mark.asyncio
    async def test_rows_in_range_filters_and_caches(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        await service.upsert(date(2024, 3, 10), ALEX, [activity("A", 1)], streak_settings)
        await service.upsert(date(2024, 3, 12), SAM, [activity("B", 2)], streak_settings)
        await service.upsert(date(2024, 3, 20), ALEX, [activity("C", 3)], streak_settings)

        rows = await service.rows_in_range(date(2024, 3, 10), date(2024, 3, 16))
        assert [r.encoded_activities for r in rows] == ["➕ A (+1)", "➕ B (+2)"]

        alex_only = await service.rows_in_range(
            date(2024, 3, 10), date(2024, 3, 16), members=["ALEX@example.com"]
        )
        assert [r.submitter_identity for r in alex_only] == ["alex@example.com"]

        # Next write moves the generation, so the range is re-read
        await service.upsert(date(2024, 3, 11), SAM, [activity("D", 4)], streak_settings)
        rows = await service.rows_in_range(date(2024, 3, 10), date(2024, 3, 16))
        assert len(rows) == 3

    @pytest.mark.asyncio
    async def test_range_served_from_cache_until_write(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        await service.upsert(DAY, "alex@example.com", [activity("A", 1)], streak_settings)
        assert len(await service.rows_in_range(DAY, DAY)) == 1

        # Rows deleted behind the service's back stay visible via the cache
        await async_session.execute(LedgerEvent.__table__.delete())
        await async_session.execute(LedgerRow.__table__.delete())
        await async_session.commit()
        assert len(await service.rows_in_range(DAY, DAY)) == 1
        assert len(await service.rows_in_range(DAY, DAY, use_cache=False)) == 0

    @pytest.mark.asyncio
    async def test_export_rows_positional(
        self, async_session: AsyncSession, cache: CacheClient, streak_settings
    ):
        service = LedgerService(async_session, cache)
        await service.upsert(DAY, "alex@example.com", [activity("A", 3)], streak_settings)

        exported = await service.export_rows()
        assert exported[0] == LEDGER_COLUMNS
        assert exported[1] == [DAY, 3, "➕ A (+3)", 1, 0, 11, "alex@example.com"]

        display = await service.export_rows(display=True)
        assert display[1][:2] == ["03/13/2024", "+3"]

    @pytest.mark.asyncio
    async def test_clear(self, async_session: AsyncSession, cache: CacheClient, streak_settings):
        service = LedgerService(async_session, cache)
        await service.upsert(DAY, "alex@example.com", [activity("A", 3)], streak_settings)
        await service.upsert(DAY, "sam@example.com", [activity("B", 3)], streak_settings)

        assert await service.clear() == 2
        assert await service.rows_in_range(DAY, DAY) == []
        assert await service.activity_log(DAY, DAY) == []
