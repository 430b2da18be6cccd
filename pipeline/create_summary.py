"""
Summarium - Create Summary Operation

Idempotently materializes the summary for one (type, period). A second
create for the same period returns the first summary's id untouched.
The operation publishes nothing; scheduling events are the caller's job.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional, Tuple

from core.errors import InvalidPeriodError
from core.types import Result
from db.interfaces import ISummaryRepository
from domain.entities import Summary, SummaryType
from domain.periods import WeekRange, YearMonth
from observability.logging import get_logger

logger = get_logger(__name__)

_PERIOD_FIELDS = {
    SummaryType.DAILY: "date",
    SummaryType.WEEKLY: "week",
    SummaryType.MONTHLY: "month",
}


@dataclass(frozen=True)
class CreateSummaryRequest:
    type: SummaryType
    date: Optional[date] = None
    week: Optional[WeekRange] = None
    month: Optional[YearMonth] = None
    related_summary_ids: Tuple[str, ...] = ()

    @classmethod
    def daily(cls, day: date) -> "CreateSummaryRequest":
        return cls(type=SummaryType.DAILY, date=day)

    @classmethod
    def weekly(cls, week: WeekRange, related_summary_ids: Iterable[str] = ()) -> "CreateSummaryRequest":
        return cls(type=SummaryType.WEEKLY, week=week, related_summary_ids=tuple(related_summary_ids))

    @classmethod
    def monthly(cls, month: YearMonth, related_summary_ids: Iterable[str] = ()) -> "CreateSummaryRequest":
        return cls(type=SummaryType.MONTHLY, month=month, related_summary_ids=tuple(related_summary_ids))

    def with_related(self, related_summary_ids: Iterable[str]) -> "CreateSummaryRequest":
        return replace(self, related_summary_ids=tuple(related_summary_ids))

    @property
    def period_key(self) -> str:
        if self.type == SummaryType.DAILY and self.date is not None:
            return self.date.isoformat()
        if self.type == SummaryType.WEEKLY and self.week is not None:
            return self.week.key
        if self.type == SummaryType.MONTHLY and self.month is not None:
            return self.month.key
        return "?"


@dataclass(frozen=True)
class CreateSummaryResponse:
    summary_id: str
    created: bool


class CreateSummary:
    """Create-or-get for a single summary period."""

    def __init__(self, summaries: ISummaryRepository):
        self._summaries = summaries

    def validate(self, request: CreateSummaryRequest) -> None:
        """Raise ``InvalidPeriodError`` unless exactly the matching period field is set."""
        if request.type == SummaryType.DAILY:
            if not isinstance(request.date, date):
                raise InvalidPeriodError("Daily summary requires a date", field_name="date")
        elif request.type == SummaryType.WEEKLY:
            if not isinstance(request.week, WeekRange):
                raise InvalidPeriodError("Weekly summary requires a week range", field_name="week")
        elif request.type == SummaryType.MONTHLY:
            if not isinstance(request.month, YearMonth):
                raise InvalidPeriodError("Monthly summary requires a month", field_name="month")
        else:
            raise InvalidPeriodError(f"Unknown summary type: {request.type!r}", field_name="type")

        extra = [
            name for name, value in (("date", request.date), ("week", request.week), ("month", request.month))
            if value is not None and name != _PERIOD_FIELDS[request.type]
        ]
        if extra:
            raise InvalidPeriodError(
                f"{request.type.value} summary must not carry {', '.join(extra)}",
                field_name=extra[0],
            )

    async def find_existing(self, request: CreateSummaryRequest) -> Result[Optional[Summary]]:
        if request.type == SummaryType.DAILY:
            return await self._summaries.find_daily_summary_by_date(request.date)
        if request.type == SummaryType.WEEKLY:
            return await self._summaries.find_weekly_summary_by_range(request.week)
        return await self._summaries.find_monthly_summary_by_month(request.month)

    async def execute(self, request: CreateSummaryRequest) -> Result[CreateSummaryResponse]:
        try:
            self.validate(request)
        except InvalidPeriodError as e:
            return Result.from_exception(e)

        existing = await self.find_existing(request)
        if existing.is_failure:
            return existing.cast()
        if existing.value is not None:
            logger.debug(
                "summary_exists",
                summary_id=existing.value.id,
                type=request.type.value,
                period=request.period_key,
            )
            return Result.success(CreateSummaryResponse(summary_id=existing.value.id, created=False))

        try:
            summary = self._build(request)
        except InvalidPeriodError as e:
            return Result.from_exception(e)

        saved = await self._summaries.save(summary)
        if saved.is_failure:
            # A concurrent create may have won the (type, period) uniqueness race.
            winner = await self.find_existing(request)
            if winner.is_success and winner.value is not None:
                logger.debug(
                    "summary_created_concurrently",
                    summary_id=winner.value.id,
                    type=request.type.value,
                    period=request.period_key,
                )
                return Result.success(CreateSummaryResponse(summary_id=winner.value.id, created=False))
            return saved.cast()

        logger.info(
            "summary_created",
            summary_id=summary.id,
            type=summary.type.value,
            period=summary.period_key,
            related=len(summary.related_summary_ids),
        )
        return Result.success(CreateSummaryResponse(summary_id=summary.id, created=True))

    def _build(self, request: CreateSummaryRequest) -> Summary:
        if request.type == SummaryType.DAILY:
            return Summary.create_daily(request.date)
        if request.type == SummaryType.WEEKLY:
            return Summary.create_weekly(request.week, request.related_summary_ids)
        return Summary.create_monthly(request.month, request.related_summary_ids)
