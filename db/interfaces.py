"""
Summarium - Repository Interfaces

The summary repository is the sole durable owner of ``Summary`` aggregates.
Every method is async and returns a ``Result`` instead of raising, so callers
can tell "no data" (a successful ``None`` or empty list) from "lookup failed"
(a failure carrying ``PERSISTENCE_ERROR``).

Gap queries (``find_missing_*``) are pure: they report periods inside the
requested range that have no summary of that tier, regardless of status.

Usage:
    from db.interfaces import ISummaryRepository

    class ScheduleSummaries:
        def __init__(self, summaries: ISummaryRepository):
            self._summaries = summaries

        async def execute(self, up_to: date):
            missing = await self._summaries.find_missing_daily_summaries(start, up_to)
            if missing.is_failure:
                ...
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Generic, List, Optional, Tuple, TypeVar

from core.types import Result
from domain.entities import Summary, SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth

PageItemT = TypeVar("PageItemT")


# =============================================================================
# QUERY VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True)
class Page(Generic[PageItemT]):
    """Immutable pagination result wrapper."""
    items: Tuple[PageItemT, ...]
    total: int
    offset: int
    limit: Optional[int]

    @property
    def has_next(self) -> bool:
        if self.limit is None:
            return False
        return self.offset + len(self.items) < self.total

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


class SortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    PERIOD_START = "period_start"


@dataclass(frozen=True)
class SummaryQuery:
    """Filter, sort and paging options for ``find_all``."""
    type: Optional[SummaryType] = None
    status: Optional[SummaryStatus] = None
    limit: Optional[int] = None
    offset: int = 0
    sort_by: SortField = SortField.CREATED_AT
    descending: bool = True

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"Offset must be >= 0: {self.offset}")
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"Limit must be >= 1: {self.limit}")


@dataclass(frozen=True)
class SummaryStatistics:
    """Aggregate counts over all stored summaries."""
    total: int = 0
    daily: int = 0
    weekly: int = 0
    monthly: int = 0
    completed: int = 0
    pending: int = 0
    processing: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "daily": self.daily,
            "weekly": self.weekly,
            "monthly": self.monthly,
            "completed": self.completed,
            "pending": self.pending,
            "processing": self.processing,
            "failed": self.failed,
        }


# =============================================================================
# REPOSITORY
# =============================================================================


class ISummaryRepository(ABC):
    """
    Persistence and querying of summaries.

    Implementations must keep (type, period) unique and return lists in a
    stable order: creation time ascending for status queries, period order
    for period queries.
    """

    # -- identity -------------------------------------------------------------

    @abstractmethod
    async def find_by_id(self, summary_id: str) -> Result[Optional[Summary]]:
        """Summary with the given id, or ``None``."""
        pass

    @abstractmethod
    async def save(self, summary: Summary, expected_version: Optional[int] = None) -> Result[None]:
        """
        Insert or update a summary.

        With ``expected_version`` the write only succeeds while the stored
        summary still carries that version; otherwise it fails with
        ``CONCURRENT_MODIFICATION`` and nothing is written.
        """
        pass

    @abstractmethod
    async def delete(self, summary_id: str) -> Result[bool]:
        """Remove a summary. Succeeds with ``False`` if it did not exist."""
        pass

    # -- period lookups -------------------------------------------------------

    @abstractmethod
    async def find_daily_summary_by_date(self, day: date) -> Result[Optional[Summary]]:
        pass

    @abstractmethod
    async def find_weekly_summary_by_range(self, week: WeekRange) -> Result[Optional[Summary]]:
        pass

    @abstractmethod
    async def find_monthly_summary_by_month(self, month: YearMonth) -> Result[Optional[Summary]]:
        pass

    # -- status and range queries ---------------------------------------------

    @abstractmethod
    async def find_by_status(self, status: SummaryStatus) -> Result[List[Summary]]:
        """Summaries in ``status``, oldest first."""
        pass

    @abstractmethod
    async def find_by_type_and_date_range(
        self,
        summary_type: SummaryType,
        start: date,
        end: date,
    ) -> Result[List[Summary]]:
        """Summaries of a tier whose period starts inside ``[start, end]``, in period order."""
        pass

    @abstractmethod
    async def find_pending_summaries(self) -> Result[List[Summary]]:
        """NEW and FAILED summaries, oldest first."""
        pass

    # -- gap queries ----------------------------------------------------------

    @abstractmethod
    async def find_missing_daily_summaries(self, start: date, end: date) -> Result[List[date]]:
        """Days in ``[start, end]`` without a DAILY summary."""
        pass

    @abstractmethod
    async def find_missing_weekly_summaries(self, start: date, end: date) -> Result[List[WeekRange]]:
        """ISO weeks overlapping ``[start, end]`` without a WEEKLY summary."""
        pass

    @abstractmethod
    async def find_missing_monthly_summaries(self, start: date, end: date) -> Result[List[YearMonth]]:
        """Calendar months overlapping ``[start, end]`` without a MONTHLY summary."""
        pass

    # -- child lookups --------------------------------------------------------

    @abstractmethod
    async def find_daily_summaries_for_week(self, week: WeekRange) -> Result[List[Summary]]:
        """Existing DAILY summaries of the week's days, in day order."""
        pass

    @abstractmethod
    async def find_weekly_summaries_for_month(self, month: YearMonth) -> Result[List[Summary]]:
        """Existing WEEKLY summaries of the weeks overlapping the month, in week order."""
        pass

    # -- listing --------------------------------------------------------------

    @abstractmethod
    async def find_all(self, query: Optional[SummaryQuery] = None) -> Result[Page[Summary]]:
        pass

    @abstractmethod
    async def get_statistics(self) -> Result[SummaryStatistics]:
        pass
