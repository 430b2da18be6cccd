"""
Summarium - Tier Completeness Checks

A WEEKLY summary may only exist once all seven DAILY summaries of its week
are DONE; a MONTHLY summary once every ISO week overlapping the month has a
DONE WEEKLY summary. These checks return the child ids in period order, or
a ``DEPENDENCY_INCOMPLETE`` failure naming the periods still missing.
"""
from __future__ import annotations

from typing import Dict, List, Tuple

from core.errors import DependencyIncompleteError
from core.types import Result
from db.interfaces import ISummaryRepository
from domain.entities import Summary
from domain.periods import WeekRange, YearMonth


class SummaryDependencies:
    def __init__(self, summaries: ISummaryRepository):
        self._summaries = summaries

    async def week_children(self, week: WeekRange) -> Result[Tuple[str, ...]]:
        """Ids of the week's seven DONE daily summaries, Monday first."""
        found = await self._summaries.find_daily_summaries_for_week(week)
        if found.is_failure:
            return found.cast()

        by_day: Dict[str, Summary] = {s.period_key: s for s in found.value}
        return _ordered_done([d.isoformat() for d in week.days()], by_day, week.key)

    async def month_children(self, month: YearMonth) -> Result[Tuple[str, ...]]:
        """Ids of the DONE weekly summaries of every week overlapping the month."""
        found = await self._summaries.find_weekly_summaries_for_month(month)
        if found.is_failure:
            return found.cast()

        by_week: Dict[str, Summary] = {s.period_key: s for s in found.value}
        return _ordered_done([w.key for w in month.weeks()], by_week, month.key)


def _ordered_done(
    keys: List[str],
    by_key: Dict[str, Summary],
    period_key: str,
) -> Result[Tuple[str, ...]]:
    missing = [k for k in keys if k not in by_key or not by_key[k].is_done]
    if missing:
        return Result.from_exception(DependencyIncompleteError(
            f"{period_key} has {len(missing)} incomplete child period(s)",
            period_key=period_key,
            missing=missing,
        ))
    return Result.success(tuple(by_key[k].id for k in keys))
