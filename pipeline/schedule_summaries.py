"""
Summarium - Schedule Summaries Operation

Discovers and creates every missing summary inside the lookback window
``[up_to - lookback_days, up_to]``, bottom-up:

1. Daily phase: every day without a DAILY summary gets one, followed by a
   ``DailyDataCollectionRequested`` event.
2. Weekly phase: every ISO week overlapping the window without a WEEKLY
   summary gets one, but only when all seven of its daily summaries are
   already DONE. Related ids are the seven daily ids, Monday first.
3. Monthly phase: every calendar month overlapping the window without a
   MONTHLY summary gets one, but only when every ISO week overlapping the
   month has a DONE weekly summary.

Children created in this run are NEW, so a tier only becomes eligible on a
later run, after the processing queue has completed its children. Gaps
older than the window are never backfilled.

The operation only ever creates missing summaries, so it is safe to run
repeatedly and alongside the processing queue.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from core.clock import Clock, SystemClock
from core.errors import PersistenceError
from core.types import Result
from db.interfaces import ISummaryRepository
from domain.entities import SummaryType
from domain.events import (
    DailyDataCollectionRequested,
    MonthlySummarizationRequested,
    WeeklySummarizationRequested,
)
from observability.logging import get_logger
from observability.metrics import record_scheduled, timed_pass
from observability.tracing import create_span
from pipeline.create_summary import CreateSummary, CreateSummaryRequest
from pipeline.dependencies import SummaryDependencies
from pipeline.event_bus import IEventPublisher

logger = get_logger(__name__)

DEFAULT_LOOKBACK_DAYS = 90


@dataclass(frozen=True)
class ScheduleSummariesResponse:
    scheduled_daily: int = 0
    scheduled_weekly: int = 0
    scheduled_monthly: int = 0
    failed_phases: Tuple[str, ...] = ()

    @property
    def total_scheduled(self) -> int:
        return self.scheduled_daily + self.scheduled_weekly + self.scheduled_monthly

    def to_dict(self) -> dict:
        return {
            "scheduled_daily": self.scheduled_daily,
            "scheduled_weekly": self.scheduled_weekly,
            "scheduled_monthly": self.scheduled_monthly,
            "total_scheduled": self.total_scheduled,
            "failed_phases": list(self.failed_phases),
        }


class ScheduleSummaries:
    """Dependency-ordered gap filling over the lookback window."""

    def __init__(
        self,
        summaries: ISummaryRepository,
        create_summary: CreateSummary,
        publisher: IEventPublisher,
        clock: Optional[Clock] = None,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ):
        if lookback_days < 0:
            raise ValueError(f"lookback_days must be >= 0: {lookback_days}")
        self._summaries = summaries
        self._create = create_summary
        self._publisher = publisher
        self._dependencies = SummaryDependencies(summaries)
        self._clock = clock or SystemClock()
        self.lookback_days = lookback_days

    def window(self, up_to: date) -> Tuple[date, date]:
        return up_to - timedelta(days=self.lookback_days), up_to

    async def execute(self, up_to: Optional[date] = None) -> Result[ScheduleSummariesResponse]:
        up_to = up_to or self._clock.today()
        start, end = self.window(up_to)

        with create_span(
            "summary.schedule",
            attributes={"window.start": start.isoformat(), "window.end": end.isoformat()},
        ) as span, timed_pass("schedule"):
            counts = {}
            failed: List[str] = []
            phases: List[Tuple[str, Callable[[date, date], Awaitable[Result[int]]]]] = [
                ("daily", self._schedule_daily),
                ("weekly", self._schedule_weekly),
                ("monthly", self._schedule_monthly),
            ]
            for name, phase in phases:
                result = await phase(start, end)
                if result.is_failure:
                    logger.error("schedule_phase_failed", phase=name, error=result.error)
                    failed.append(name)
                    counts[name] = 0
                else:
                    counts[name] = result.value

            response = ScheduleSummariesResponse(
                scheduled_daily=counts["daily"],
                scheduled_weekly=counts["weekly"],
                scheduled_monthly=counts["monthly"],
                failed_phases=tuple(failed),
            )
            span.set_attribute("scheduled.total", response.total_scheduled)

        record_scheduled(SummaryType.DAILY.value, response.scheduled_daily)
        record_scheduled(SummaryType.WEEKLY.value, response.scheduled_weekly)
        record_scheduled(SummaryType.MONTHLY.value, response.scheduled_monthly)

        if len(failed) == len(phases):
            return Result.from_exception(PersistenceError(
                f"All schedule phases failed for window {start.isoformat()}..{end.isoformat()}",
                operation="schedule",
            ))

        logger.info(
            "summaries_scheduled",
            window_start=start.isoformat(),
            window_end=end.isoformat(),
            **response.to_dict(),
        )
        return Result.success(response)

    async def _schedule_daily(self, start: date, end: date) -> Result[int]:
        missing = await self._summaries.find_missing_daily_summaries(start, end)
        if missing.is_failure:
            return missing.cast()

        scheduled = 0
        for day in missing.value:
            created = await self._create.execute(CreateSummaryRequest.daily(day))
            if created.is_failure:
                logger.warning("daily_create_failed", date=day.isoformat(), error=created.error)
                continue
            if not created.value.created:
                continue
            await self._publisher.publish(DailyDataCollectionRequested(
                aggregate_id=created.value.summary_id,
                date=day.isoformat(),
                summary_id=created.value.summary_id,
            ))
            scheduled += 1
        return Result.success(scheduled)

    async def _schedule_weekly(self, start: date, end: date) -> Result[int]:
        missing = await self._summaries.find_missing_weekly_summaries(start, end)
        if missing.is_failure:
            return missing.cast()

        scheduled = 0
        for week in missing.value:
            children = await self._dependencies.week_children(week)
            if children.is_failure:
                self._log_skip("week", week.key, children)
                continue

            created = await self._create.execute(CreateSummaryRequest.weekly(week, children.value))
            if created.is_failure:
                logger.warning("weekly_create_failed", week=week.key, error=created.error)
                continue
            if not created.value.created:
                continue
            await self._publisher.publish(WeeklySummarizationRequested(
                aggregate_id=created.value.summary_id,
                week_start=week.start.isoformat(),
                week_end=week.end.isoformat(),
                summary_id=created.value.summary_id,
                related_summary_ids=children.value,
            ))
            scheduled += 1
        return Result.success(scheduled)

    async def _schedule_monthly(self, start: date, end: date) -> Result[int]:
        missing = await self._summaries.find_missing_monthly_summaries(start, end)
        if missing.is_failure:
            return missing.cast()

        scheduled = 0
        for month in missing.value:
            children = await self._dependencies.month_children(month)
            if children.is_failure:
                self._log_skip("month", month.key, children)
                continue

            created = await self._create.execute(CreateSummaryRequest.monthly(month, children.value))
            if created.is_failure:
                logger.warning("monthly_create_failed", month=month.key, error=created.error)
                continue
            if not created.value.created:
                continue
            await self._publisher.publish(MonthlySummarizationRequested(
                aggregate_id=created.value.summary_id,
                month=month.key,
                summary_id=created.value.summary_id,
                related_summary_ids=children.value,
            ))
            scheduled += 1
        return Result.success(scheduled)

    @staticmethod
    def _log_skip(kind: str, period_key: str, result: Result) -> None:
        if result.error_code == "DEPENDENCY_INCOMPLETE":
            logger.debug("period_not_ready", kind=kind, period=period_key)
        else:
            logger.warning("dependency_check_failed", kind=kind, period=period_key, error=result.error)
