"""
Tests for the idempotent create operation.
"""
import asyncio
from datetime import date

import pytest

from domain.entities import SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth
from pipeline.create_summary import CreateSummaryRequest


class TestCreateSummary:

    @pytest.mark.asyncio
    async def test_creates_new_daily(self, create_summary, repository):
        result = await create_summary.execute(CreateSummaryRequest.daily(date(2024, 1, 3)))

        assert result.is_success
        assert result.value.created is True
        stored = (await repository.find_by_id(result.value.summary_id)).value
        assert stored.type == SummaryType.DAILY
        assert stored.status == SummaryStatus.NEW
        assert stored.retry_count == 0

    @pytest.mark.asyncio
    async def test_second_create_returns_first_id(self, create_summary, repository):
        request = CreateSummaryRequest.weekly(WeekRange(date(2024, 1, 1)), ["a"])

        first = await create_summary.execute(request)
        second = await create_summary.execute(request.with_related(["b", "c"]))

        assert second.is_success
        assert second.value.created is False
        assert second.value.summary_id == first.value.summary_id
        assert (await repository.get_statistics()).value.total == 1
        stored = (await repository.find_by_id(first.value.summary_id)).value
        assert stored.related_summary_ids == ("a",)

    @pytest.mark.asyncio
    async def test_existing_summary_left_untouched(self, create_summary, repository, store):
        existing = await store(YearMonth(2024, 1), status=SummaryStatus.FAILED, retry_count=2)

        result = await create_summary.execute(CreateSummaryRequest.monthly(YearMonth(2024, 1)))

        assert result.value.summary_id == existing.id
        stored = (await repository.find_by_id(existing.id)).value
        assert stored.status == SummaryStatus.FAILED
        assert stored.retry_count == 2

    @pytest.mark.asyncio
    async def test_create_publishes_nothing(self, create_summary, event_bus):
        await create_summary.execute(CreateSummaryRequest.daily(date(2024, 1, 3)))
        assert event_bus.published == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_", [
        CreateSummaryRequest(type=SummaryType.DAILY),
        CreateSummaryRequest(type=SummaryType.WEEKLY, date=date(2024, 1, 1)),
        CreateSummaryRequest(type=SummaryType.MONTHLY, week=WeekRange(date(2024, 1, 1))),
    ])
    async def test_rejects_mismatched_period(self, create_summary, repository, request_):
        result = await create_summary.execute(request_)

        assert result.is_failure
        assert result.error_code == "INVALID_PERIOD"
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_rejects_extra_period_fields(self, create_summary):
        request = CreateSummaryRequest(
            type=SummaryType.DAILY, date=date(2024, 1, 1), month=YearMonth(2024, 1)
        )

        result = await create_summary.execute(request)

        assert result.error_code == "INVALID_PERIOD"

    @pytest.mark.asyncio
    async def test_lookup_failure_propagates(self, create_summary, repository):
        repository.fail_next("find_daily_summary_by_date")

        result = await create_summary.execute(CreateSummaryRequest.daily(date(2024, 1, 3)))

        assert result.error_code == "PERSISTENCE_ERROR"
        assert "save" not in repository.calls

    @pytest.mark.asyncio
    async def test_concurrent_creates_share_one_summary(self, create_summary, repository):
        request = CreateSummaryRequest.daily(date(2024, 1, 3))

        first, second = await asyncio.gather(
            create_summary.execute(request),
            create_summary.execute(request),
        )

        assert first.is_success and second.is_success
        assert sorted([first.value.created, second.value.created]) == [False, True]
        assert first.value.summary_id == second.value.summary_id
        assert (await repository.get_statistics()).value.daily == 1

    @pytest.mark.asyncio
    async def test_save_failure_without_winner_propagates(self, create_summary, repository):
        repository.fail_next("save")

        result = await create_summary.execute(CreateSummaryRequest.daily(date(2024, 1, 3)))

        assert result.error_code == "PERSISTENCE_ERROR"
        assert (await repository.get_statistics()).value.total == 0
