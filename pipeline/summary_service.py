"""
Summarium - Summary Service

Long-lived orchestrator over the summary operations. Owns the two recurring
loops of the engine:

- Scheduling: every ``schedule_interval_ms`` the lookback window is scanned
  and missing summaries are created (bottom-up, dependency ordered).
- Processing: every ``process_interval_ms`` one queue pass drains pending
  summaries sequentially, pausing ``retry_delay_ms`` between items.

Queue passes are single-flight. A tick arriving while a pass is running is
dropped, not queued, and never touches the repository. Failed attempts are
charged against a per-summary retry budget; once spent, the summary stays
FAILED and is skipped by later passes and by manual retries. An attempt that
never ran, because another caller holds the summary, is not charged.

Usage:
    service = SummaryService(repository, create, process, schedule, force, bus)
    await service.initialize()
    ...
    await service.stop()
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Set

from core.clock import AsyncioTimer, Clock, SystemClock, Timer, TimerHandle
from core.errors import (
    ConcurrentModificationError,
    ConfigError,
    InvalidSummaryOperationError,
    RetryBudgetExceededError,
)
from core.types import Result
from db.interfaces import ISummaryRepository, Page, SummaryQuery, SummaryStatistics
from domain.entities import Summary, SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth
from observability.logging import get_logger
from observability.metrics import record_pass_skipped, timed_pass
from observability.tracing import create_span
from pipeline.create_summary import CreateSummary, CreateSummaryRequest, CreateSummaryResponse
from pipeline.event_bus import IEventPublisher
from pipeline.force_summarization import ForceSummarization, ForceSummarizationResponse
from pipeline.process_summary import ProcessSummary, ProcessSummaryResponse
from pipeline.schedule_summaries import ScheduleSummaries, ScheduleSummariesResponse

logger = get_logger(__name__)

OVERVIEW_WINDOW_DAYS = 30

# Refusals: the summary was held or changed by another caller, so no attempt ran.
UNCHARGED_ERROR_CODES = frozenset({
    InvalidSummaryOperationError.error_code,
    ConcurrentModificationError.error_code,
})


@dataclass(frozen=True)
class SummaryServiceConfig:
    """Loop and retry settings of the summary service."""
    auto_schedule_enabled: bool = True
    auto_process_enabled: bool = True
    max_retries: int = 3
    retry_delay_ms: int = 5000
    process_interval_ms: int = 10000
    schedule_interval_ms: int = 60 * 60 * 1000

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ConfigError(
                f"max_retries must be >= 1: {self.max_retries}",
                config_key="max_retries",
                actual_value=self.max_retries,
            )
        if self.retry_delay_ms < 0:
            raise ConfigError(
                f"retry_delay_ms must be >= 0: {self.retry_delay_ms}",
                config_key="retry_delay_ms",
                actual_value=self.retry_delay_ms,
            )
        if self.process_interval_ms <= 0:
            raise ConfigError(
                f"process_interval_ms must be > 0: {self.process_interval_ms}",
                config_key="process_interval_ms",
                actual_value=self.process_interval_ms,
            )
        if self.schedule_interval_ms < 0:
            raise ConfigError(
                f"schedule_interval_ms must be >= 0: {self.schedule_interval_ms}",
                config_key="schedule_interval_ms",
                actual_value=self.schedule_interval_ms,
            )

    @classmethod
    def from_settings(cls, settings: Any) -> "SummaryServiceConfig":
        """Build from a ``config.SummaryConfig``."""
        return cls(
            auto_schedule_enabled=settings.auto_schedule_enabled,
            auto_process_enabled=settings.auto_process_enabled,
            max_retries=settings.max_retries,
            retry_delay_ms=settings.retry_delay_ms,
            process_interval_ms=settings.process_interval_ms,
            schedule_interval_ms=settings.schedule_interval_ms,
        )

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000

    @property
    def process_interval_seconds(self) -> float:
        return self.process_interval_ms / 1000

    @property
    def schedule_interval_seconds(self) -> float:
        return self.schedule_interval_ms / 1000


@dataclass
class QueuePassReport:
    """Outcome of one queue pass."""
    fetched: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    contended: int = 0
    exhausted: int = 0
    skipped: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fetched": self.fetched,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "contended": self.contended,
            "exhausted": self.exhausted,
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass(frozen=True)
class ProcessingStatus:
    is_processing: bool
    auto_process_enabled: bool
    auto_schedule_enabled: bool
    processing_loop_active: bool
    schedule_loop_active: bool

    def to_dict(self) -> Dict[str, bool]:
        return {
            "is_processing": self.is_processing,
            "auto_process_enabled": self.auto_process_enabled,
            "auto_schedule_enabled": self.auto_schedule_enabled,
            "processing_loop_active": self.processing_loop_active,
            "schedule_loop_active": self.schedule_loop_active,
        }


@dataclass(frozen=True)
class SummaryOverview:
    """Statistics plus the most recent DONE summary of each tier."""
    statistics: SummaryStatistics
    latest: Dict[SummaryType, Optional[Summary]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statistics": self.statistics.to_dict(),
            "latest": {
                tier.value: (summary.to_dict() if summary else None)
                for tier, summary in self.latest.items()
            },
        }


class SummaryService:
    """
    Orchestrates scheduling, queue processing and manual operations.

    The service owns the only mutable engine state: the ``is_processing``
    guard and the two timer handles. Everything else lives in the
    repository.
    """

    def __init__(
        self,
        summaries: ISummaryRepository,
        create_summary: CreateSummary,
        process_summary: ProcessSummary,
        schedule_summaries: ScheduleSummaries,
        force_summarization: ForceSummarization,
        publisher: IEventPublisher,
        config: Optional[SummaryServiceConfig] = None,
        clock: Optional[Clock] = None,
        timer: Optional[Timer] = None,
    ):
        self._summaries = summaries
        self._create = create_summary
        self._process = process_summary
        self._schedule = schedule_summaries
        self._force = force_summarization
        self._publisher = publisher
        self.config = config or SummaryServiceConfig()
        self._clock = clock or SystemClock()
        self._timer = timer or AsyncioTimer()

        self._is_processing = False
        self._initialized = False
        self._process_handle: Optional[TimerHandle] = None
        self._schedule_handle: Optional[TimerHandle] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> Result[None]:
        """Run the first schedule pass and start the enabled loops."""
        if self._initialized:
            return Result.success()

        if self.config.auto_schedule_enabled:
            await self._on_schedule_tick()
            if self.config.schedule_interval_ms > 0:
                self._schedule_handle = self._timer.call_every(
                    self.config.schedule_interval_seconds, self._on_schedule_tick
                )

        if self.config.auto_process_enabled:
            self.start_auto_processing()

        self._initialized = True
        logger.info("summary_service_initialized", **self.get_processing_status().to_dict())
        return Result.success()

    def start_auto_processing(self) -> None:
        """Start the processing loop and trigger one immediate pass."""
        if self._process_handle is not None and self._process_handle.active:
            return
        self._process_handle = self._timer.call_every(
            self.config.process_interval_seconds, self._on_process_tick
        )
        task = asyncio.get_running_loop().create_task(self._on_process_tick())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.info("auto_processing_started", interval_ms=self.config.process_interval_ms)

    def stop_auto_processing(self) -> None:
        if self._process_handle is not None:
            self._process_handle.cancel()
            self._process_handle = None
            logger.info("auto_processing_stopped")

    async def stop(self) -> None:
        """Cancel both loops. A pass already running is allowed to finish."""
        self.stop_auto_processing()
        if self._schedule_handle is not None:
            self._schedule_handle.cancel()
            self._schedule_handle = None
        await self.wait_for_background()
        self._initialized = False
        logger.info("summary_service_stopped")

    async def wait_for_background(self) -> None:
        """Wait for passes started outside the timer cadence."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def get_processing_status(self) -> ProcessingStatus:
        return ProcessingStatus(
            is_processing=self._is_processing,
            auto_process_enabled=self.config.auto_process_enabled,
            auto_schedule_enabled=self.config.auto_schedule_enabled,
            processing_loop_active=bool(self._process_handle and self._process_handle.active),
            schedule_loop_active=bool(self._schedule_handle and self._schedule_handle.active),
        )

    async def _on_schedule_tick(self) -> None:
        try:
            result = await self._schedule.execute()
            if result.is_failure:
                logger.error("scheduled_run_failed", error=result.error, code=result.error_code)
        except Exception:
            logger.exception("scheduled_run_raised")

    async def _on_process_tick(self) -> None:
        try:
            await self.process_queue()
        except Exception:
            logger.exception("queue_pass_raised")

    # -------------------------------------------------------------------------
    # Queue processing
    # -------------------------------------------------------------------------

    async def process_queue(self) -> QueuePassReport:
        """
        Drain pending summaries once.

        Returns a skipped report without touching the repository when
        another pass is still running.
        """
        if self._is_processing:
            logger.debug("queue_pass_skipped")
            record_pass_skipped()
            return QueuePassReport(skipped=True)

        self._is_processing = True
        try:
            with create_span("summary.queue_pass") as span, timed_pass("queue"):
                report = await self._drain_pending()
                span.set_attribute("queue.fetched", report.fetched)
                span.set_attribute("queue.processed", report.processed)
                span.set_attribute("queue.failed", report.failed)
            return report
        finally:
            self._is_processing = False

    async def trigger_queue_processing(self) -> QueuePassReport:
        """Run a queue pass now, outside the timer cadence."""
        return await self.process_queue()

    async def _drain_pending(self) -> QueuePassReport:
        report = QueuePassReport()
        pending = await self._summaries.find_pending_summaries()
        if pending.is_failure:
            logger.error("pending_fetch_failed", error=pending.error)
            report.error = pending.error
            return report

        report.fetched = len(pending.value)
        if not pending.value:
            return report

        max_retries = self.config.max_retries
        for summary in pending.value:
            if not summary.has_budget(max_retries):
                await self._exhaust(summary)
                report.exhausted += 1
                continue

            report.processed += 1
            outcome = await self._process.execute(summary.id)
            if outcome.is_success:
                report.succeeded += 1
            elif outcome.error_code in UNCHARGED_ERROR_CODES:
                report.contended += 1
                logger.info("summary_held_elsewhere", summary_id=summary.id, error=outcome.error)
            else:
                report.failed += 1
                await self._charge_failed_attempt(summary.id, outcome.error, outcome.error_code)

            await self._clock.sleep(self.config.retry_delay_seconds)

        logger.info("queue_pass_completed", **report.to_dict())
        return report

    async def _exhaust(self, summary: Summary) -> None:
        if summary.status == SummaryStatus.FAILED:
            return
        summary.mark_exhausted()
        saved = await self._summaries.save(summary)
        if saved.is_failure:
            logger.error("exhausted_status_not_saved", summary_id=summary.id, error=saved.error)
            return
        await self._publisher.publish_all(summary.clear_domain_events())
        logger.warning(
            "summary_retry_budget_exhausted",
            summary_id=summary.id,
            period=summary.period_key,
            retry_count=summary.retry_count,
        )

    async def _charge_failed_attempt(
        self,
        summary_id: str,
        error: Optional[str],
        error_code: Optional[str],
    ) -> None:
        if error_code in UNCHARGED_ERROR_CODES:
            logger.debug("failed_attempt_not_ours", summary_id=summary_id, code=error_code)
            return
        found = await self._summaries.find_by_id(summary_id)
        if found.is_failure:
            logger.error("failed_attempt_not_charged", summary_id=summary_id, error=found.error)
            return
        summary = found.value
        if summary is None or summary.status not in (SummaryStatus.PROCESSING, SummaryStatus.FAILED):
            logger.debug("failed_attempt_skipped", summary_id=summary_id)
            return
        if not summary.has_budget(self.config.max_retries):
            logger.debug("failed_attempt_over_budget", summary_id=summary_id, retry_count=summary.retry_count)
            return

        read_version = summary.version
        summary.register_failed_attempt(self.config.max_retries, error)
        saved = await self._summaries.save(summary, expected_version=read_version)
        if saved.is_failure:
            logger.error("failed_attempt_not_saved", summary_id=summary_id, error=saved.error)
            return
        await self._publisher.publish_all(summary.clear_domain_events())

        if summary.status == SummaryStatus.FAILED:
            logger.warning(
                "summary_retry_budget_exhausted",
                summary_id=summary_id,
                period=summary.period_key,
                retry_count=summary.retry_count,
            )
        else:
            logger.info(
                "summary_requeued",
                summary_id=summary_id,
                retry_count=summary.retry_count,
                max_retries=self.config.max_retries,
            )

    async def retry_failed_summaries(self) -> Result[int]:
        """
        Re-attempt every FAILED summary that still has retry budget.

        Returns how many re-attempts succeeded; one that fails again is
        charged and left out of the count.
        """
        failed = await self._summaries.find_by_status(SummaryStatus.FAILED)
        if failed.is_failure:
            logger.error("failed_fetch_failed", error=failed.error)
            return failed.cast()

        retried = 0
        for summary in failed.value:
            read_version = summary.version
            try:
                summary.retry(self.config.max_retries)
            except RetryBudgetExceededError:
                logger.debug("retry_skipped", summary_id=summary.id, retry_count=summary.retry_count)
                continue

            saved = await self._summaries.save(summary, expected_version=read_version)
            if saved.is_failure:
                logger.error("retry_not_saved", summary_id=summary.id, error=saved.error)
                continue
            await self._publisher.publish_all(summary.clear_domain_events())

            outcome = await self._process.execute(summary.id)
            if outcome.is_success:
                retried += 1
            else:
                await self._charge_failed_attempt(summary.id, outcome.error, outcome.error_code)

            await self._clock.sleep(self.config.retry_delay_seconds)

        logger.info("failed_summaries_retried", retried=retried, candidates=len(failed.value))
        return Result.success(retried)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def schedule_missing_summaries(
        self,
        up_to: Optional[date] = None,
    ) -> Result[ScheduleSummariesResponse]:
        return await self._schedule.execute(up_to)

    async def create_summary(self, request: CreateSummaryRequest) -> Result[CreateSummaryResponse]:
        return await self._create.execute(request)

    async def process_summary(
        self,
        summary_id: str,
        context: Optional[str] = None,
    ) -> Result[ProcessSummaryResponse]:
        return await self._process.execute(summary_id, context=context)

    async def force_summarization(
        self,
        request: CreateSummaryRequest,
        context: Optional[str] = None,
    ) -> Result[ForceSummarizationResponse]:
        """
        Create and process one period now. A forced attempt that ran and
        failed is charged like a queued one.
        """
        forced = await self._force.execute(request, context=context)
        if forced.is_success and not forced.value.processed:
            await self._charge_failed_attempt(
                forced.value.summary_id, forced.value.error, forced.value.error_code
            )
        return forced

    async def delete_summary(self, summary_id: str) -> Result[bool]:
        deleted = await self._summaries.delete(summary_id)
        if deleted.is_success and deleted.value:
            logger.info("summary_deleted", summary_id=summary_id)
        return deleted

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_summary(self, summary_id: str) -> Result[Optional[Summary]]:
        return await self._summaries.find_by_id(summary_id)

    async def get_daily_summary(self, day: date) -> Result[Optional[Summary]]:
        return await self._summaries.find_daily_summary_by_date(day)

    async def get_weekly_summary(self, week: WeekRange) -> Result[Optional[Summary]]:
        return await self._summaries.find_weekly_summary_by_range(week)

    async def get_monthly_summary(self, month: YearMonth) -> Result[Optional[Summary]]:
        return await self._summaries.find_monthly_summary_by_month(month)

    async def get_summaries_by_type_and_date_range(
        self,
        summary_type: SummaryType,
        start: date,
        end: date,
    ) -> Result[List[Summary]]:
        return await self._summaries.find_by_type_and_date_range(summary_type, start, end)

    async def get_pending_summaries(self) -> Result[List[Summary]]:
        return await self._summaries.find_pending_summaries()

    async def list_summaries(self, query: Optional[SummaryQuery] = None) -> Result[Page[Summary]]:
        return await self._summaries.find_all(query)

    async def get_summary_overview(self) -> Result[SummaryOverview]:
        stats = await self._summaries.get_statistics()
        if stats.is_failure:
            return stats.cast()

        end = self._clock.today()
        start = end - timedelta(days=OVERVIEW_WINDOW_DAYS)
        latest: Dict[SummaryType, Optional[Summary]] = {}
        for tier in SummaryType:
            found = await self._summaries.find_by_type_and_date_range(tier, start, end)
            if found.is_failure:
                return found.cast()
            done = [s for s in found.value if s.is_done]
            latest[tier] = done[-1] if done else None

        return Result.success(SummaryOverview(statistics=stats.value, latest=latest))
