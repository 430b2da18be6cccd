"""
Summarium - Period Value Objects

Calendar periods that identify summaries:

- a calendar day (``datetime.date``) for DAILY summaries
- ``WeekRange``: a Monday-anchored 7-day span for WEEKLY summaries
- ``YearMonth``: a calendar month for MONTHLY summaries

Weeks follow ISO-8601 (Monday start). A week "overlaps" a date range or a
month when at least one of its seven days falls inside it, so the weeks of a
month run from the week holding the 1st to the week holding the last day.
"""
from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import ClassVar, Iterator, List, Pattern

from core.errors import InvalidPeriodError

_DAY = timedelta(days=1)


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD``."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise InvalidPeriodError(
            f"Invalid date: {value!r}", field_name="date", actual_value=value, cause=e
        ) from e


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day in ``[start, end]``."""
    current = start
    while current <= end:
        yield current
        current += _DAY


@dataclass(frozen=True, order=True)
class WeekRange:
    """
    Monday-anchored 7-day span.

    Constructed from its Monday; ``end`` is always ``start + 6 days``.
    """

    start: date

    def __post_init__(self) -> None:
        if not isinstance(self.start, date):
            raise InvalidPeriodError(
                "Week start must be a date", field_name="week_start", actual_value=self.start
            )
        if self.start.weekday() != 0:
            raise InvalidPeriodError(
                f"Week must start on a Monday, got {self.start.isoformat()}",
                field_name="week_start",
                actual_value=self.start,
            )

    @property
    def end(self) -> date:
        return self.start + timedelta(days=6)

    @property
    def key(self) -> str:
        return f"{self.start.isoformat()}_{self.end.isoformat()}"

    def days(self) -> List[date]:
        return [self.start + timedelta(days=i) for i in range(7)]

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def next(self) -> "WeekRange":
        return WeekRange(self.start + timedelta(days=7))

    @classmethod
    def containing(cls, day: date) -> "WeekRange":
        """The ISO week that holds ``day``."""
        return cls(day - timedelta(days=day.weekday()))

    @classmethod
    def from_bounds(cls, start: date, end: date) -> "WeekRange":
        """Build from explicit bounds, validating the 7-day span."""
        week = cls(start)
        if end != week.end:
            raise InvalidPeriodError(
                f"Week must span exactly 7 days: {start.isoformat()}..{end.isoformat()}",
                field_name="week_end",
                actual_value=end,
            )
        return week

    @classmethod
    def parse(cls, value: str) -> "WeekRange":
        """Parse ``YYYY-MM-DD_YYYY-MM-DD`` or a bare Monday ``YYYY-MM-DD``."""
        if "_" in value:
            start_text, _, end_text = value.partition("_")
            return cls.from_bounds(parse_date(start_text), parse_date(end_text))
        return cls(parse_date(value))

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True, order=True)
class YearMonth:
    """Calendar month, textual form ``YYYY-MM``."""

    year: int
    month: int

    PATTERN: ClassVar[Pattern[str]] = re.compile(r"^\d{4}-\d{2}$")

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise InvalidPeriodError(
                f"Month must be between 1 and 12, got {self.month}",
                field_name="month",
                actual_value=self.month,
            )
        if not 1 <= self.year <= 9999:
            raise InvalidPeriodError(
                f"Year out of range: {self.year}", field_name="year", actual_value=self.year
            )

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def weeks(self) -> List[WeekRange]:
        """Every ISO week overlapping the month, in order."""
        return weeks_overlapping(self.first_day, self.last_day)

    def next(self) -> "YearMonth":
        if self.month == 12:
            return YearMonth(self.year + 1, 1)
        return YearMonth(self.year, self.month + 1)

    @classmethod
    def of(cls, day: date) -> "YearMonth":
        return cls(day.year, day.month)

    @classmethod
    def parse(cls, value: str) -> "YearMonth":
        if not isinstance(value, str) or not cls.PATTERN.match(value):
            raise InvalidPeriodError(
                f"Month must match YYYY-MM, got {value!r}", field_name="month", actual_value=value
            )
        year_text, month_text = value.split("-")
        return cls(int(year_text), int(month_text))

    def __str__(self) -> str:
        return self.key


def weeks_overlapping(start: date, end: date) -> List[WeekRange]:
    """ISO weeks with at least one day in ``[start, end]``."""
    weeks: List[WeekRange] = []
    if start > end:
        return weeks
    week = WeekRange.containing(start)
    while week.start <= end:
        weeks.append(week)
        week = week.next()
    return weeks


def months_overlapping(start: date, end: date) -> List[YearMonth]:
    """Calendar months with at least one day in ``[start, end]``."""
    months: List[YearMonth] = []
    if start > end:
        return months
    month = YearMonth.of(start)
    last = YearMonth.of(end)
    while month <= last:
        months.append(month)
        month = month.next()
    return months
