"""
Tests for the summary service: queue passes, retry budgets and loops.

Time is virtual: the ManualClock records every retry-delay sleep and the
ManualTimer fires ticks only when a test asks it to.
"""
import asyncio
from datetime import date

import pytest

from core.errors import ConfigError
from domain.entities import SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth
from pipeline.create_summary import CreateSummaryRequest
from pipeline.summary_service import SummaryServiceConfig


async def _until(predicate, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


async def _status(repository, summary_id):
    return (await repository.find_by_id(summary_id)).value


# =============================================================================
# CONFIGURATION
# =============================================================================


class TestServiceConfig:

    def test_defaults(self):
        config = SummaryServiceConfig()

        assert config.auto_schedule_enabled is True
        assert config.auto_process_enabled is True
        assert config.max_retries == 3
        assert config.retry_delay_ms == 5000
        assert config.process_interval_ms == 10000
        assert config.retry_delay_seconds == 5.0

    @pytest.mark.parametrize("overrides", [
        {"max_retries": 0},
        {"retry_delay_ms": -1},
        {"process_interval_ms": 0},
        {"schedule_interval_ms": -5},
    ])
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ConfigError):
            SummaryServiceConfig(**overrides)


# =============================================================================
# QUEUE PASSES
# =============================================================================


class TestProcessQueue:

    @pytest.mark.asyncio
    async def test_processes_pending_and_sleeps_between_items(self, service, store, repository, clock):
        first = await store(date(2024, 1, 1), status=SummaryStatus.NEW)
        second = await store(date(2024, 1, 2), status=SummaryStatus.NEW)

        report = await service.process_queue()

        assert report.fetched == 2
        assert report.processed == 2
        assert report.succeeded == 2
        assert report.skipped is False
        assert clock.sleeps == [5.0, 5.0]
        assert (await _status(repository, first.id)).status == SummaryStatus.DONE
        assert (await _status(repository, second.id)).status == SummaryStatus.DONE

    @pytest.mark.asyncio
    async def test_items_processed_in_repository_order(self, service, store, generator):
        for day in (date(2024, 1, 3), date(2024, 1, 1), date(2024, 1, 2)):
            await store(day, status=SummaryStatus.NEW)

        await service.process_queue()

        assert generator.calls == ["2024-01-03", "2024-01-01", "2024-01-02"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_the_batch(self, service, store, repository, generator):
        failing = await store(date(2024, 1, 1), status=SummaryStatus.NEW)
        healthy = await store(date(2024, 1, 2), status=SummaryStatus.NEW)
        generator.fail("2024-01-01")

        report = await service.process_queue()

        assert report.failed == 1
        assert report.succeeded == 1
        failed = await _status(repository, failing.id)
        assert failed.status == SummaryStatus.NEW
        assert failed.retry_count == 1
        assert (await _status(repository, healthy.id)).status == SummaryStatus.DONE

    @pytest.mark.asyncio
    async def test_three_failures_exhaust_the_budget(self, service, store, repository, generator):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        generator.fail_always("2024-01-05")

        for expected_count in (1, 2):
            await service.process_queue()
            current = await _status(repository, summary.id)
            assert current.status == SummaryStatus.NEW
            assert current.retry_count == expected_count

        await service.process_queue()
        current = await _status(repository, summary.id)
        assert current.status == SummaryStatus.FAILED
        assert current.retry_count == 3

        report = await service.process_queue()
        assert report.exhausted == 1
        assert report.processed == 0
        assert len(generator.calls) == 3
        assert (await _status(repository, summary.id)).status == SummaryStatus.FAILED

    @pytest.mark.asyncio
    async def test_retry_count_never_exceeds_budget_while_new(self, make_service, store, repository, generator):
        service = make_service(max_retries=2)
        summary = await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        generator.fail_always("2024-01-05")

        for _ in range(5):
            await service.process_queue()
            current = await _status(repository, summary.id)
            if current.status == SummaryStatus.NEW:
                assert current.retry_count < 2

        assert current.status == SummaryStatus.FAILED
        assert current.retry_count == 2

    @pytest.mark.asyncio
    async def test_over_budget_new_summary_marked_failed(self, service, store, repository, event_bus, generator):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.NEW, retry_count=3)

        report = await service.process_queue()

        assert report.exhausted == 1
        assert generator.calls == []
        assert (await _status(repository, summary.id)).status == SummaryStatus.FAILED
        changes = event_bus.of_type("SummaryStatusChanged")
        assert changes[-1].payload["new_status"] == "FAILED"

    @pytest.mark.asyncio
    async def test_failed_with_budget_is_picked_up(self, service, store, repository):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.FAILED, retry_count=1)

        report = await service.process_queue()

        assert report.succeeded == 1
        done = await _status(repository, summary.id)
        assert done.status == SummaryStatus.DONE
        assert done.retry_count == 1

    @pytest.mark.asyncio
    async def test_pending_fetch_failure_leaves_state_unchanged(self, service, store, repository):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        repository.fail_next("find_pending_summaries")

        report = await service.process_queue()

        assert report.error is not None
        assert report.processed == 0
        assert service.is_processing is False
        assert (await _status(repository, summary.id)).status == SummaryStatus.NEW

        recovered = await service.process_queue()
        assert recovered.succeeded == 1

    @pytest.mark.asyncio
    async def test_empty_queue_does_not_sleep(self, service, clock):
        report = await service.process_queue()

        assert report.fetched == 0
        assert clock.sleeps == []


# =============================================================================
# SINGLE-FLIGHT
# =============================================================================


class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_overlapping_pass_is_skipped_without_repository_access(
        self, service, store, repository, generator
    ):
        await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        generator.gate = asyncio.Event()

        running = asyncio.create_task(service.process_queue())
        await _until(lambda: generator.calls)
        assert service.is_processing is True
        calls_before = list(repository.calls)

        skipped = await service.process_queue()

        assert skipped.skipped is True
        assert skipped.fetched == 0
        assert repository.calls == calls_before

        generator.gate.set()
        report = await running
        assert report.succeeded == 1
        assert service.is_processing is False

    @pytest.mark.asyncio
    async def test_timer_ticks_during_a_pass_are_dropped(self, service, store, generator, timer):
        await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        generator.gate = asyncio.Event()

        service.start_auto_processing()
        await _until(lambda: generator.calls)

        ticks = timer.fire() + timer.fire()
        await asyncio.gather(*ticks)

        generator.gate.set()
        await service.wait_for_background()
        assert generator.calls == ["2024-01-05"]
        service.stop_auto_processing()

    @pytest.mark.asyncio
    async def test_guard_released_after_crash(self, service, repository, monkeypatch):
        async def explode():
            raise RuntimeError("driver crashed")

        monkeypatch.setattr(repository, "find_pending_summaries", explode)

        with pytest.raises(RuntimeError):
            await service.process_queue()
        assert service.is_processing is False


# =============================================================================
# CONTENTION
# =============================================================================


class TestContention:

    @pytest.mark.asyncio
    async def test_summary_held_by_forced_run_is_not_charged(self, service, store, repository, generator):
        first = await store(date(2024, 1, 1), status=SummaryStatus.NEW)
        second = await store(date(2024, 1, 2), status=SummaryStatus.NEW)
        first_gate = generator.hold("2024-01-01")
        second_gate = generator.hold("2024-01-02")

        queue = asyncio.create_task(service.process_queue())
        await _until(lambda: generator.calls == ["2024-01-01"])
        forced = asyncio.create_task(
            service.force_summarization(CreateSummaryRequest.daily(date(2024, 1, 2)))
        )
        await _until(lambda: generator.calls == ["2024-01-01", "2024-01-02"])

        first_gate.set()
        report = await queue

        assert report.succeeded == 1
        assert report.contended == 1
        assert report.failed == 0
        held = await _status(repository, second.id)
        assert held.status == SummaryStatus.PROCESSING
        assert held.retry_count == 0

        second_gate.set()
        result = await forced

        assert result.value.processed is True
        done = await _status(repository, second.id)
        assert done.status == SummaryStatus.DONE
        assert done.retry_count == 0
        assert (await _status(repository, first.id)).status == SummaryStatus.DONE
        assert generator.calls == ["2024-01-01", "2024-01-02"]


# =============================================================================
# FORCED RUNS
# =============================================================================


class TestForcedRuns:

    @pytest.mark.asyncio
    async def test_failed_forced_run_is_charged(self, service, store, repository, generator):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        generator.fail("2024-01-05")

        result = await service.force_summarization(CreateSummaryRequest.daily(date(2024, 1, 5)))

        assert result.value.processed is False
        assert result.value.error_code == "PROCESSING_FAILURE"
        charged = await _status(repository, summary.id)
        assert charged.status == SummaryStatus.NEW
        assert charged.retry_count == 1

    @pytest.mark.asyncio
    async def test_forced_run_stuck_in_processing_is_requeued(
        self, service, store, repository, generator, monkeypatch
    ):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        generator.fail("2024-01-05")
        generate = generator.generate

        async def generate_then_lose_storage(request):
            result = await generate(request)
            repository.fail_next("save")
            return result

        monkeypatch.setattr(generator, "generate", generate_then_lose_storage)
        result = await service.force_summarization(CreateSummaryRequest.daily(date(2024, 1, 5)))
        monkeypatch.undo()

        assert result.value.processed is False
        requeued = await _status(repository, summary.id)
        assert requeued.status == SummaryStatus.NEW
        assert requeued.retry_count == 1

        report = await service.process_queue()
        assert report.succeeded == 1
        assert (await _status(repository, summary.id)).status == SummaryStatus.DONE

    @pytest.mark.asyncio
    async def test_forced_failure_past_budget_not_charged(self, service, store, repository, generator):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.FAILED, retry_count=3)
        generator.fail("2024-01-05")

        result = await service.force_summarization(CreateSummaryRequest.daily(date(2024, 1, 5)))

        assert result.value.processed is False
        current = await _status(repository, summary.id)
        assert current.status == SummaryStatus.FAILED
        assert current.retry_count == 3


# =============================================================================
# MANUAL RETRY
# =============================================================================


class TestRetryFailed:

    @pytest.mark.asyncio
    async def test_retries_only_summaries_with_budget(self, service, store, repository, clock, generator):
        retryable = await store(date(2024, 1, 1), status=SummaryStatus.FAILED, retry_count=1)
        exhausted = await store(date(2024, 1, 2), status=SummaryStatus.FAILED, retry_count=3)

        result = await service.retry_failed_summaries()

        assert result.is_success
        assert result.value == 1
        assert generator.calls == ["2024-01-01"]
        assert clock.sleeps == [5.0]
        assert (await _status(repository, retryable.id)).status == SummaryStatus.DONE
        untouched = await _status(repository, exhausted.id)
        assert untouched.status == SummaryStatus.FAILED
        assert untouched.retry_count == 3

    @pytest.mark.asyncio
    async def test_failed_retry_charges_the_budget(self, service, store, repository, generator):
        summary = await store(date(2024, 1, 1), status=SummaryStatus.FAILED, retry_count=2)
        generator.fail("2024-01-01")

        result = await service.retry_failed_summaries()

        assert result.value == 0
        assert generator.calls == ["2024-01-01"]
        current = await _status(repository, summary.id)
        assert current.status == SummaryStatus.FAILED
        assert current.retry_count == 3

        again = await service.retry_failed_summaries()
        assert again.value == 0

    @pytest.mark.asyncio
    async def test_fetch_failure_returned(self, service, repository):
        repository.fail_next("find_by_status")

        result = await service.retry_failed_summaries()

        assert result.error_code == "PERSISTENCE_ERROR"


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_initialize_schedules_and_starts_loops(self, make_service, repository, timer):
        service = make_service(auto_schedule_enabled=True, auto_process_enabled=True)

        result = await service.initialize()
        await service.wait_for_background()

        assert result.is_success
        assert sorted(r.interval_seconds for r in timer.active_registrations) == [10.0, 3600.0]
        stats = (await repository.get_statistics()).value
        assert stats.daily == 7
        assert stats.completed == 7

        status = service.get_processing_status()
        assert status.processing_loop_active is True
        assert status.schedule_loop_active is True

        await service.stop()
        assert timer.active_registrations == []
        assert service.get_processing_status().processing_loop_active is False

    @pytest.mark.asyncio
    async def test_weekly_follows_on_next_schedule_tick(self, make_service, repository, timer):
        service = make_service(auto_schedule_enabled=True, auto_process_enabled=True)
        await service.initialize()
        await service.wait_for_background()

        await asyncio.gather(*timer.fire(3600.0))
        await asyncio.gather(*timer.fire(10.0))

        weekly = (await repository.find_weekly_summary_by_range(WeekRange(date(2024, 1, 1)))).value
        assert weekly is not None
        assert weekly.status == SummaryStatus.DONE
        await service.stop()

    @pytest.mark.asyncio
    async def test_initialize_survives_schedule_failure(self, make_service, repository, timer):
        for operation in (
            "find_missing_daily_summaries",
            "find_missing_weekly_summaries",
            "find_missing_monthly_summaries",
        ):
            repository.fail_always(operation)
        service = make_service(auto_schedule_enabled=True)

        result = await service.initialize()

        assert result.is_success
        assert len(timer.active_registrations) == 1
        await service.stop()

    @pytest.mark.asyncio
    async def test_disabled_loops_register_nothing(self, service, timer):
        await service.initialize()

        assert timer.registrations == []

    @pytest.mark.asyncio
    async def test_tick_exceptions_are_swallowed(self, service, repository, timer, monkeypatch):
        async def explode():
            raise RuntimeError("driver crashed")

        monkeypatch.setattr(repository, "find_pending_summaries", explode)
        service.start_auto_processing()
        await service.wait_for_background()

        ticks = timer.fire(10.0)
        await asyncio.gather(*ticks)

        assert all(t.exception() is None for t in ticks)
        assert service.is_processing is False
        service.stop_auto_processing()

    @pytest.mark.asyncio
    async def test_stop_lets_inflight_pass_finish(self, service, store, repository, generator):
        summary = await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        generator.gate = asyncio.Event()
        service.start_auto_processing()
        await _until(lambda: generator.calls)

        stopping = asyncio.create_task(service.stop())
        for _ in range(5):
            await asyncio.sleep(0)
        assert not stopping.done()

        generator.gate.set()
        await stopping
        assert (await _status(repository, summary.id)).status == SummaryStatus.DONE


# =============================================================================
# QUERIES
# =============================================================================


class TestQueries:

    @pytest.mark.asyncio
    async def test_overview_latest_done_per_tier(self, service, store):
        await store(date(2024, 1, 5))
        await store(date(2024, 1, 6))
        await store(date(2024, 1, 7), status=SummaryStatus.NEW)
        await store(WeekRange(date(2023, 12, 25)))
        await store(YearMonth(2023, 11))

        result = await service.get_summary_overview()

        overview = result.value
        assert overview.statistics.total == 5
        assert overview.latest[SummaryType.DAILY].period_key == "2024-01-06"
        assert overview.latest[SummaryType.WEEKLY].period_key == "2023-12-25_2023-12-31"
        assert overview.latest[SummaryType.MONTHLY] is None
        assert overview.to_dict()["latest"]["MONTHLY"] is None

    @pytest.mark.asyncio
    async def test_overview_statistics_failure(self, service, repository):
        repository.fail_next("get_statistics")

        result = await service.get_summary_overview()

        assert result.error_code == "PERSISTENCE_ERROR"

    @pytest.mark.asyncio
    async def test_period_getters(self, service, store):
        daily = await store(date(2024, 1, 5))
        weekly = await store(WeekRange(date(2024, 1, 1)))
        monthly = await store(YearMonth(2024, 1))

        assert (await service.get_daily_summary(date(2024, 1, 5))).value.id == daily.id
        assert (await service.get_weekly_summary(WeekRange(date(2024, 1, 1)))).value.id == weekly.id
        assert (await service.get_monthly_summary(YearMonth(2024, 1))).value.id == monthly.id
        assert (await service.get_summary(daily.id)).value.id == daily.id

    @pytest.mark.asyncio
    async def test_pending_and_range_queries(self, service, store):
        pending = await store(date(2024, 1, 5), status=SummaryStatus.NEW)
        await store(date(2024, 1, 6))

        assert [s.id for s in (await service.get_pending_summaries()).value] == [pending.id]
        in_range = (await service.get_summaries_by_type_and_date_range(
            SummaryType.DAILY, date(2024, 1, 1), date(2024, 1, 5)
        )).value
        assert [s.id for s in in_range] == [pending.id]

    @pytest.mark.asyncio
    async def test_delete_summary(self, service, store):
        summary = await store(date(2024, 1, 5))

        assert (await service.delete_summary(summary.id)).value is True
        assert (await service.get_summary(summary.id)).value is None

    @pytest.mark.asyncio
    async def test_trigger_queue_processing(self, service, store):
        await store(date(2024, 1, 5), status=SummaryStatus.NEW)

        report = await service.trigger_queue_processing()

        assert report.succeeded == 1
