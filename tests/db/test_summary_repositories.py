"""
Contract tests shared by the in-memory and SQLAlchemy repositories.

The SQL variant runs against an in-memory SQLite database through aiosqlite.
"""
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from db.interfaces import SortField, SummaryQuery
from db.memory import InMemorySummaryRepository
from db.sql import SqlSummaryRepository
from domain.entities import Summary, SummaryContent, SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth


@pytest_asyncio.fixture(params=["memory", "sql"])
async def repo(request):
    if request.param == "memory":
        yield InMemorySummaryRepository()
        return

    repository = SqlSummaryRepository.from_url(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await repository.create_schema()
    yield repository
    await repository.close()


async def _save(repo, summary: Summary) -> Summary:
    result = await repo.save(summary)
    assert result.is_success, result.error
    return summary


def _done(summary: Summary) -> Summary:
    summary.start_processing()
    summary.complete(SummaryContent(f"Full {summary.period_key}", f"Short {summary.period_key}"))
    summary.clear_domain_events()
    return summary


# =============================================================================
# IDENTITY
# =============================================================================


class TestIdentity:

    @pytest.mark.asyncio
    async def test_save_and_find_round_trip(self, repo):
        week = WeekRange(date(2024, 1, 1))
        summary = await _save(repo, Summary.create_weekly(week, ["a", "b"]))

        found = await repo.find_by_id(summary.id)

        assert found.is_success
        loaded = found.value
        assert loaded.id == summary.id
        assert loaded.type == SummaryType.WEEKLY
        assert loaded.week == week
        assert loaded.related_summary_ids == ("a", "b")
        assert loaded.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_find_missing_id_returns_none(self, repo):
        found = await repo.find_by_id("does-not-exist")
        assert found.is_success
        assert found.value is None

    @pytest.mark.asyncio
    async def test_save_updates_existing(self, repo):
        summary = await _save(repo, Summary.create_daily(date(2024, 1, 2)))
        await _save(repo, _done(summary))

        loaded = (await repo.find_by_id(summary.id)).value
        assert loaded.status == SummaryStatus.DONE
        assert loaded.short_summary == "Short 2024-01-02"

    @pytest.mark.asyncio
    async def test_duplicate_period_rejected(self, repo):
        await _save(repo, Summary.create_daily(date(2024, 1, 2)))

        result = await repo.save(Summary.create_daily(date(2024, 1, 2)))

        assert result.is_failure
        assert result.error_code == "PERSISTENCE_ERROR"

    @pytest.mark.asyncio
    async def test_conditional_save_at_current_version(self, repo):
        summary = await _save(repo, Summary.create_daily(date(2024, 1, 2)))
        loaded = (await repo.find_by_id(summary.id)).value
        read_version = loaded.version

        loaded.start_processing()
        result = await repo.save(loaded, expected_version=read_version)

        assert result.is_success
        stored = (await repo.find_by_id(summary.id)).value
        assert stored.status == SummaryStatus.PROCESSING
        assert stored.version == read_version + 1

    @pytest.mark.asyncio
    async def test_conditional_save_refused_after_concurrent_write(self, repo):
        summary = await _save(repo, Summary.create_daily(date(2024, 1, 2)))
        winner = (await repo.find_by_id(summary.id)).value
        loser = (await repo.find_by_id(summary.id)).value

        winner.start_processing()
        assert (await repo.save(winner, expected_version=summary.version)).is_success
        loser.start_processing()
        loser.mark_as_failed("late")
        result = await repo.save(loser, expected_version=summary.version)

        assert result.error_code == "CONCURRENT_MODIFICATION"
        stored = (await repo.find_by_id(summary.id)).value
        assert stored.status == SummaryStatus.PROCESSING
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_conditional_save_of_unknown_summary_refused(self, repo):
        result = await repo.save(Summary.create_daily(date(2024, 1, 2)), expected_version=0)

        assert result.error_code == "CONCURRENT_MODIFICATION"
        assert (await repo.find_daily_summary_by_date(date(2024, 1, 2))).value is None

    @pytest.mark.asyncio
    async def test_delete(self, repo):
        summary = await _save(repo, Summary.create_daily(date(2024, 1, 2)))

        assert (await repo.delete(summary.id)).value is True
        assert (await repo.delete(summary.id)).value is False
        assert (await repo.find_by_id(summary.id)).value is None


# =============================================================================
# PERIOD AND STATUS QUERIES
# =============================================================================


class TestQueries:

    @pytest.mark.asyncio
    async def test_period_lookups(self, repo):
        daily = await _save(repo, Summary.create_daily(date(2024, 1, 3)))
        weekly = await _save(repo, Summary.create_weekly(WeekRange(date(2024, 1, 1))))
        monthly = await _save(repo, Summary.create_monthly(YearMonth(2024, 1)))

        assert (await repo.find_daily_summary_by_date(date(2024, 1, 3))).value.id == daily.id
        assert (await repo.find_daily_summary_by_date(date(2024, 1, 4))).value is None
        assert (await repo.find_weekly_summary_by_range(WeekRange(date(2024, 1, 1)))).value.id == weekly.id
        assert (await repo.find_monthly_summary_by_month(YearMonth(2024, 1))).value.id == monthly.id

    @pytest.mark.asyncio
    async def test_pending_includes_new_and_failed_oldest_first(self, repo):
        first = await _save(repo, Summary.create_daily(date(2024, 1, 1)))
        done = await _save(repo, _done(Summary.create_daily(date(2024, 1, 2))))
        failed = Summary(
            id="failed-1", type=SummaryType.DAILY, date=date(2024, 1, 3),
            status=SummaryStatus.FAILED, retry_count=3,
        )
        await _save(repo, failed)

        pending = (await repo.find_pending_summaries()).value

        assert [s.id for s in pending] == [first.id, failed.id]
        assert done.id not in [s.id for s in pending]

    @pytest.mark.asyncio
    async def test_find_by_status(self, repo):
        await _save(repo, Summary.create_daily(date(2024, 1, 1)))
        done = await _save(repo, _done(Summary.create_daily(date(2024, 1, 2))))

        found = (await repo.find_by_status(SummaryStatus.DONE)).value
        assert [s.id for s in found] == [done.id]

    @pytest.mark.asyncio
    async def test_type_and_date_range_uses_period_start(self, repo):
        for day in (date(2024, 1, 5), date(2024, 1, 1), date(2024, 1, 10)):
            await _save(repo, Summary.create_daily(day))
        await _save(repo, Summary.create_weekly(WeekRange(date(2024, 1, 1))))

        found = (await repo.find_by_type_and_date_range(
            SummaryType.DAILY, date(2024, 1, 1), date(2024, 1, 7)
        )).value

        assert [s.period_key for s in found] == ["2024-01-01", "2024-01-05"]


# =============================================================================
# GAP AND CHILD QUERIES
# =============================================================================


class TestGapQueries:

    @pytest.mark.asyncio
    async def test_missing_daily(self, repo):
        await _save(repo, Summary.create_daily(date(2024, 1, 2)))

        missing = (await repo.find_missing_daily_summaries(date(2024, 1, 1), date(2024, 1, 3))).value

        assert missing == [date(2024, 1, 1), date(2024, 1, 3)]

    @pytest.mark.asyncio
    async def test_missing_weekly(self, repo):
        await _save(repo, Summary.create_weekly(WeekRange(date(2024, 1, 8))))

        missing = (await repo.find_missing_weekly_summaries(date(2024, 1, 3), date(2024, 1, 20))).value

        assert [w.key for w in missing] == ["2024-01-01_2024-01-07", "2024-01-15_2024-01-21"]

    @pytest.mark.asyncio
    async def test_missing_monthly(self, repo):
        await _save(repo, Summary.create_monthly(YearMonth(2023, 12)))

        missing = (await repo.find_missing_monthly_summaries(date(2023, 11, 15), date(2024, 1, 2))).value

        assert [m.key for m in missing] == ["2023-11", "2024-01"]

    @pytest.mark.asyncio
    async def test_daily_summaries_for_week_in_day_order(self, repo):
        week = WeekRange(date(2024, 1, 1))
        for day in (date(2024, 1, 4), date(2024, 1, 1), date(2024, 1, 8)):
            await _save(repo, Summary.create_daily(day))

        found = (await repo.find_daily_summaries_for_week(week)).value

        assert [s.period_key for s in found] == ["2024-01-01", "2024-01-04"]

    @pytest.mark.asyncio
    async def test_weekly_summaries_for_month_include_boundary_weeks(self, repo):
        for start in (date(2024, 1, 29), date(2024, 2, 5), date(2024, 3, 4)):
            await _save(repo, Summary.create_weekly(WeekRange(start)))

        found = (await repo.find_weekly_summaries_for_month(YearMonth(2024, 2))).value

        assert [s.week_start for s in found] == [date(2024, 1, 29), date(2024, 2, 5)]


# =============================================================================
# LISTING AND STATISTICS
# =============================================================================


class TestListing:

    @pytest.mark.asyncio
    async def test_find_all_pagination(self, repo):
        for offset in range(5):
            await _save(repo, Summary.create_daily(date(2024, 1, 1 + offset)))

        page = (await repo.find_all(SummaryQuery(
            limit=2, offset=1, sort_by=SortField.PERIOD_START, descending=False
        ))).value

        assert page.total == 5
        assert [s.period_key for s in page.items] == ["2024-01-02", "2024-01-03"]

    @pytest.mark.asyncio
    async def test_find_all_filters(self, repo):
        await _save(repo, Summary.create_daily(date(2024, 1, 1)))
        await _save(repo, Summary.create_weekly(WeekRange(date(2024, 1, 1))))

        page = (await repo.find_all(SummaryQuery(type=SummaryType.WEEKLY))).value

        assert page.total == 1
        assert page.items[0].type == SummaryType.WEEKLY

    @pytest.mark.asyncio
    async def test_statistics(self, repo):
        await _save(repo, Summary.create_daily(date(2024, 1, 1)))
        await _save(repo, _done(Summary.create_daily(date(2024, 1, 2))))
        await _save(repo, Summary.create_monthly(YearMonth(2024, 1)))

        stats = (await repo.get_statistics()).value

        assert stats.total == 3
        assert stats.daily == 2
        assert stats.monthly == 1
        assert stats.weekly == 0
        assert stats.completed == 1
        assert stats.pending == 2
        assert stats.failed == 0


class TestMemoryFailureInjection:

    @pytest.mark.asyncio
    async def test_fail_next_recovers(self):
        repo = InMemorySummaryRepository()
        repo.fail_next("find_pending_summaries")

        first = await repo.find_pending_summaries()
        second = await repo.find_pending_summaries()

        assert first.error_code == "PERSISTENCE_ERROR"
        assert second.is_success
        assert repo.calls == ["find_pending_summaries", "find_pending_summaries"]

    @pytest.mark.asyncio
    async def test_stored_copies_are_detached(self):
        repo = InMemorySummaryRepository()
        summary = Summary.create_daily(date(2024, 1, 1))
        await repo.save(summary)

        summary.start_processing()

        loaded = (await repo.find_by_id(summary.id)).value
        assert loaded.status == SummaryStatus.NEW
