"""
Summarium - Domain Events

Immutable records of significant occurrences in the summary lifecycle.

Lifecycle events are recorded on the ``Summary`` aggregate as it changes
state and are published by the operation that persisted it. Scheduling
events are emitted by the schedule operation for each summary it creates,
for any downstream listener (data collection, summarization workers) to act on.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """
    Base class for domain events.

    Subclasses add their payload fields and override ``_event_data``.
    """
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    aggregate_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        """Return the event type name."""
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "data": self._event_data(),
        }

    def _event_data(self) -> Dict[str, Any]:
        """Override in subclasses to provide event-specific data."""
        return {}


# Lifecycle events
@dataclass(frozen=True)
class SummaryStatusChanged(DomainEvent):
    """A summary moved between lifecycle states."""
    summary_type: str = ""
    period_key: str = ""
    old_status: str = ""
    new_status: str = ""
    retry_count: int = 0

    def _event_data(self) -> Dict[str, Any]:
        return {
            "summary_type": self.summary_type,
            "period_key": self.period_key,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "retry_count": self.retry_count,
        }


# Scheduling events
@dataclass(frozen=True)
class DailyDataCollectionRequested(DomainEvent):
    """A DAILY summary was scheduled; its day's data should be collected."""
    date: str = ""
    summary_id: str = ""

    def _event_data(self) -> Dict[str, Any]:
        return {"date": self.date, "summary_id": self.summary_id}


@dataclass(frozen=True)
class WeeklySummarizationRequested(DomainEvent):
    """A WEEKLY summary was scheduled over seven DONE daily summaries."""
    week_start: str = ""
    week_end: str = ""
    summary_id: str = ""
    related_summary_ids: Tuple[str, ...] = ()

    def _event_data(self) -> Dict[str, Any]:
        return {
            "week_start": self.week_start,
            "week_end": self.week_end,
            "summary_id": self.summary_id,
            "related_summary_ids": list(self.related_summary_ids),
        }


@dataclass(frozen=True)
class MonthlySummarizationRequested(DomainEvent):
    """A MONTHLY summary was scheduled over the DONE weekly summaries of its month."""
    month: str = ""
    summary_id: str = ""
    related_summary_ids: Tuple[str, ...] = ()

    def _event_data(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "summary_id": self.summary_id,
            "related_summary_ids": list(self.related_summary_ids),
        }
