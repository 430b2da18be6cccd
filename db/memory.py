"""
Summarium - In-Memory Summary Repository

Dictionary-backed repository used by tests and the CLI demo. Stored
summaries are copies: callers must ``save`` to make mutations visible,
exactly as with the SQL repository.

Failures can be injected per operation to exercise error paths:

    repo = InMemorySummaryRepository()
    repo.fail_next("find_pending_summaries")
    result = await repo.find_pending_summaries()
    assert result.error_code == "PERSISTENCE_ERROR"
"""
from __future__ import annotations

import asyncio
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from core.errors import ConcurrentModificationError, PersistenceError
from core.types import Result
from db.interfaces import (
    ISummaryRepository,
    Page,
    SortField,
    SummaryQuery,
    SummaryStatistics,
)
from domain.entities import Summary, SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth, iter_days, months_overlapping, weeks_overlapping
from observability.logging import get_logger

logger = get_logger(__name__)

ALWAYS = -1


def copy_summary(summary: Summary) -> Summary:
    """Detached copy of a summary without pending events."""
    return Summary(
        id=summary.id,
        type=summary.type,
        date=summary.date,
        week=summary.week,
        month=summary.month,
        status=summary.status,
        retry_count=summary.retry_count,
        related_summary_ids=summary.related_summary_ids,
        full_summary=summary.full_summary,
        short_summary=summary.short_summary,
        error_message=summary.error_message,
        created_at=summary.created_at,
        updated_at=summary.updated_at,
        version=summary.version,
    )


class InMemorySummaryRepository(ISummaryRepository):
    """Summary repository held in process memory."""

    def __init__(self) -> None:
        self._records: Dict[str, Summary] = {}
        self._failures: Dict[str, int] = {}
        self.calls: List[str] = []

    # -- failure injection ----------------------------------------------------

    def fail_next(self, operation: str, times: int = 1) -> None:
        self._failures[operation] = times

    def fail_always(self, operation: str) -> None:
        self._failures[operation] = ALWAYS

    def heal(self, operation: Optional[str] = None) -> None:
        if operation is None:
            self._failures.clear()
        else:
            self._failures.pop(operation, None)

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        await asyncio.sleep(0)
        remaining = self._failures.get(operation)
        if remaining is None:
            return
        if remaining != ALWAYS:
            if remaining <= 1:
                del self._failures[operation]
            else:
                self._failures[operation] = remaining - 1
        raise PersistenceError(f"Injected failure in {operation}", operation=operation)

    async def _run(self, operation: str, fn: Callable[[], object]) -> Result:
        try:
            await self._enter(operation)
            return Result.success(fn())
        except PersistenceError as e:
            logger.warning("repository_operation_failed", operation=operation, error=str(e))
            return Result.from_exception(e)

    # -- helpers --------------------------------------------------------------

    def _all(self) -> List[Summary]:
        return list(self._records.values())

    def _find_period(self, summary_type: SummaryType, period_key: str) -> Optional[Summary]:
        for summary in self._records.values():
            if summary.type == summary_type and summary.period_key == period_key:
                return summary
        return None

    def _copy_or_none(self, summary: Optional[Summary]) -> Optional[Summary]:
        return copy_summary(summary) if summary else None

    def _by_created(self, summaries: List[Summary]) -> List[Summary]:
        return [copy_summary(s) for s in sorted(summaries, key=lambda s: s.created_at)]

    def _keys(self, summary_type: SummaryType) -> set:
        return {s.period_key for s in self._records.values() if s.type == summary_type}

    # -- identity -------------------------------------------------------------

    async def find_by_id(self, summary_id: str) -> Result[Optional[Summary]]:
        return await self._run(
            "find_by_id", lambda: self._copy_or_none(self._records.get(summary_id))
        )

    async def save(self, summary: Summary, expected_version: Optional[int] = None) -> Result[None]:
        try:
            await self._enter("save")
            if expected_version is not None:
                stored = self._records.get(summary.id)
                actual = stored.version if stored else None
                if actual != expected_version:
                    raise ConcurrentModificationError(summary.id, expected_version, actual)
            existing = self._find_period(summary.type, summary.period_key)
            if existing is not None and existing.id != summary.id:
                raise PersistenceError(
                    f"{summary.type.value} summary for {summary.period_key} already exists",
                    operation="save",
                )
            self._records[summary.id] = copy_summary(summary)
            return Result.success(None)
        except PersistenceError as e:
            logger.warning("repository_operation_failed", operation="save", error=str(e))
            return Result.from_exception(e)

    async def delete(self, summary_id: str) -> Result[bool]:
        return await self._run("delete", lambda: self._records.pop(summary_id, None) is not None)

    # -- period lookups -------------------------------------------------------

    async def find_daily_summary_by_date(self, day: date) -> Result[Optional[Summary]]:
        return await self._run(
            "find_daily_summary_by_date",
            lambda: self._copy_or_none(self._find_period(SummaryType.DAILY, day.isoformat())),
        )

    async def find_weekly_summary_by_range(self, week: WeekRange) -> Result[Optional[Summary]]:
        return await self._run(
            "find_weekly_summary_by_range",
            lambda: self._copy_or_none(self._find_period(SummaryType.WEEKLY, week.key)),
        )

    async def find_monthly_summary_by_month(self, month: YearMonth) -> Result[Optional[Summary]]:
        return await self._run(
            "find_monthly_summary_by_month",
            lambda: self._copy_or_none(self._find_period(SummaryType.MONTHLY, month.key)),
        )

    # -- status and range queries ---------------------------------------------

    async def find_by_status(self, status: SummaryStatus) -> Result[List[Summary]]:
        return await self._run(
            "find_by_status",
            lambda: self._by_created([s for s in self._all() if s.status == status]),
        )

    async def find_by_type_and_date_range(
        self,
        summary_type: SummaryType,
        start: date,
        end: date,
    ) -> Result[List[Summary]]:
        def query() -> List[Summary]:
            matches = [
                s for s in self._all()
                if s.type == summary_type and start <= s.period_start <= end
            ]
            return [copy_summary(s) for s in sorted(matches, key=lambda s: s.period_start)]

        return await self._run("find_by_type_and_date_range", query)

    async def find_pending_summaries(self) -> Result[List[Summary]]:
        pending = (SummaryStatus.NEW, SummaryStatus.FAILED)
        return await self._run(
            "find_pending_summaries",
            lambda: self._by_created([s for s in self._all() if s.status in pending]),
        )

    # -- gap queries ----------------------------------------------------------

    async def find_missing_daily_summaries(self, start: date, end: date) -> Result[List[date]]:
        def query() -> List[date]:
            existing = self._keys(SummaryType.DAILY)
            return [d for d in iter_days(start, end) if d.isoformat() not in existing]

        return await self._run("find_missing_daily_summaries", query)

    async def find_missing_weekly_summaries(self, start: date, end: date) -> Result[List[WeekRange]]:
        def query() -> List[WeekRange]:
            existing = self._keys(SummaryType.WEEKLY)
            return [w for w in weeks_overlapping(start, end) if w.key not in existing]

        return await self._run("find_missing_weekly_summaries", query)

    async def find_missing_monthly_summaries(self, start: date, end: date) -> Result[List[YearMonth]]:
        def query() -> List[YearMonth]:
            existing = self._keys(SummaryType.MONTHLY)
            return [m for m in months_overlapping(start, end) if m.key not in existing]

        return await self._run("find_missing_monthly_summaries", query)

    # -- child lookups --------------------------------------------------------

    async def find_daily_summaries_for_week(self, week: WeekRange) -> Result[List[Summary]]:
        def query() -> List[Summary]:
            found = []
            for day in week.days():
                summary = self._find_period(SummaryType.DAILY, day.isoformat())
                if summary is not None:
                    found.append(copy_summary(summary))
            return found

        return await self._run("find_daily_summaries_for_week", query)

    async def find_weekly_summaries_for_month(self, month: YearMonth) -> Result[List[Summary]]:
        def query() -> List[Summary]:
            found = []
            for week in month.weeks():
                summary = self._find_period(SummaryType.WEEKLY, week.key)
                if summary is not None:
                    found.append(copy_summary(summary))
            return found

        return await self._run("find_weekly_summaries_for_month", query)

    # -- listing --------------------------------------------------------------

    async def find_all(self, query: Optional[SummaryQuery] = None) -> Result[Page[Summary]]:
        query = query or SummaryQuery()

        def run() -> Page[Summary]:
            matches = [
                s for s in self._all()
                if (query.type is None or s.type == query.type)
                and (query.status is None or s.status == query.status)
            ]
            matches.sort(key=_sort_key(query.sort_by), reverse=query.descending)
            end = None if query.limit is None else query.offset + query.limit
            items = tuple(copy_summary(s) for s in matches[query.offset:end])
            return Page(items=items, total=len(matches), offset=query.offset, limit=query.limit)

        return await self._run("find_all", run)

    async def get_statistics(self) -> Result[SummaryStatistics]:
        def run() -> SummaryStatistics:
            summaries = self._all()
            by_type = _count(summaries, lambda s: s.type)
            by_status = _count(summaries, lambda s: s.status)
            return SummaryStatistics(
                total=len(summaries),
                daily=by_type.get(SummaryType.DAILY, 0),
                weekly=by_type.get(SummaryType.WEEKLY, 0),
                monthly=by_type.get(SummaryType.MONTHLY, 0),
                completed=by_status.get(SummaryStatus.DONE, 0),
                pending=by_status.get(SummaryStatus.NEW, 0),
                processing=by_status.get(SummaryStatus.PROCESSING, 0),
                failed=by_status.get(SummaryStatus.FAILED, 0),
            )

        return await self._run("get_statistics", run)


def _sort_key(sort_by: SortField) -> Callable[[Summary], Tuple]:
    if sort_by == SortField.UPDATED_AT:
        return lambda s: (s.updated_at,)
    if sort_by == SortField.PERIOD_START:
        return lambda s: (s.period_start, s.type.value)
    return lambda s: (s.created_at,)


def _count(summaries: List[Summary], key: Callable[[Summary], object]) -> Dict[object, int]:
    counts: Dict[object, int] = {}
    for summary in summaries:
        k = key(summary)
        counts[k] = counts.get(k, 0) + 1
    return counts
