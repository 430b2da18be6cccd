"""
Summarium - Domain Layer

The ``Summary`` aggregate, its calendar periods and its domain events.
"""

from domain.entities import (
    AggregateRoot,
    Entity,
    Summary,
    SummaryContent,
    SummaryStatus,
    SummaryType,
)
from domain.events import (
    DailyDataCollectionRequested,
    DomainEvent,
    MonthlySummarizationRequested,
    SummaryStatusChanged,
    WeeklySummarizationRequested,
)
from domain.periods import WeekRange, YearMonth, months_overlapping, weeks_overlapping

__all__ = [
    "Entity",
    "AggregateRoot",
    "Summary",
    "SummaryContent",
    "SummaryStatus",
    "SummaryType",
    "DomainEvent",
    "SummaryStatusChanged",
    "DailyDataCollectionRequested",
    "WeeklySummarizationRequested",
    "MonthlySummarizationRequested",
    "WeekRange",
    "YearMonth",
    "weeks_overlapping",
    "months_overlapping",
]
