"""
Summarium - Domain Entities

The ``Summary`` aggregate and the aggregate-root machinery it builds on.

A summary is a periodic aggregate report over task activity. Each summary
belongs to exactly one tier (DAILY, WEEKLY, MONTHLY) and one period of that
tier, and moves through a small lifecycle:

    NEW ──start_processing──▶ PROCESSING ──complete──▶ DONE
     ▲                            │
     │                      mark_as_failed
     │                            ▼
     └──register_failed_attempt── FAILED   (terminal once the retry budget is spent)

Design Principles:
    - Aggregates are consistency boundaries
    - Value objects are immutable and self-validating
    - Domain events capture all status changes
    - Lifecycle rules live on the aggregate, not in services
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from core.errors import (
    InvalidPeriodError,
    InvalidSummaryOperationError,
    RetryBudgetExceededError,
)
from domain.events import DomainEvent, SummaryStatusChanged
from domain.periods import WeekRange, YearMonth


# =============================================================================
# VALUE OBJECTS
# =============================================================================


class SummaryType(str, Enum):
    """Summary tiers, bottom-up."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class SummaryStatus(str, Enum):
    """Lifecycle states of a summary."""
    NEW = "NEW"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class SummaryContent:
    """Generated summary body: a full text and a short digest."""
    full_summary: str
    short_summary: str

    @property
    def is_blank(self) -> bool:
        return not self.full_summary.strip() or not self.short_summary.strip()


# =============================================================================
# BASE CLASSES
# =============================================================================


class Entity(ABC):
    """
    Base class for domain entities.

    Entities have identity that persists over time, distinguishing them
    from value objects which are defined solely by their attributes.
    """

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique identifier for this entity."""
        pass

    @property
    def entity_type(self) -> str:
        return self.__class__.__name__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"{self.entity_type}(id={self.id!r})"


class AggregateRoot(Entity, ABC):
    """
    Base class for aggregate roots.

    Aggregate roots maintain invariants across their boundary and record
    domain events when significant state changes occur. Events stay on the
    aggregate until whoever persisted it collects them with
    ``clear_domain_events`` and publishes them.
    """

    def __init__(self) -> None:
        self._domain_events: List[DomainEvent] = []
        self._version: int = 0
        self._invariant_violations: List[str] = []

    @property
    def version(self) -> int:
        """Number of state changes applied over the aggregate's lifetime."""
        return self._version

    @property
    def domain_events(self) -> List[DomainEvent]:
        """Pending domain events to be dispatched."""
        return list(self._domain_events)

    @property
    def has_pending_events(self) -> bool:
        return len(self._domain_events) > 0

    def add_domain_event(self, event: DomainEvent) -> None:
        self._domain_events.append(event)

    def clear_domain_events(self) -> List[DomainEvent]:
        """Clear and return all pending domain events."""
        events = self._domain_events
        self._domain_events = []
        return events

    def increment_version(self) -> None:
        self._version += 1

    @property
    def is_healthy(self) -> bool:
        self._validate_invariants()
        return len(self._invariant_violations) == 0

    @property
    def invariant_violations(self) -> List[str]:
        self._validate_invariants()
        return list(self._invariant_violations)

    def _validate_invariants(self) -> None:
        """Override in subclasses to add domain-specific invariant checks."""
        self._invariant_violations = []

    def _add_invariant_violation(self, violation: str) -> None:
        if violation not in self._invariant_violations:
            self._invariant_violations.append(violation)


# =============================================================================
# SUMMARY AGGREGATE
# =============================================================================


class Summary(AggregateRoot):
    """
    Aggregate root for periodic summaries.

    Invariants:
        - Exactly one period field is populated, matching ``type``
        - Related summary ids are duplicate-free and empty for DAILY
        - ``retry_count`` is never negative and never decremented
        - DONE summaries carry non-blank content
    """

    def __init__(
        self,
        id: str,
        type: SummaryType,
        date: Optional[date] = None,
        week: Optional[WeekRange] = None,
        month: Optional[YearMonth] = None,
        status: SummaryStatus = SummaryStatus.NEW,
        retry_count: int = 0,
        related_summary_ids: Iterable[str] = (),
        full_summary: str = "",
        short_summary: str = "",
        error_message: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        version: int = 0,
    ) -> None:
        super().__init__()
        self._version = version
        self._id = id
        self._type = SummaryType(type)
        self._date = date
        self._week = week
        self._month = month
        self._status = SummaryStatus(status)
        self._retry_count = retry_count
        self._related_summary_ids: List[str] = []
        self._append_related(related_summary_ids)
        self._full_summary = full_summary
        self._short_summary = short_summary
        self._error_message = error_message
        self._created_at = created_at or datetime.now(timezone.utc)
        self._updated_at = updated_at or self._created_at
        self._check_period()

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def create_daily(cls, day: date) -> "Summary":
        return cls(id=str(uuid4()), type=SummaryType.DAILY, date=day)

    @classmethod
    def create_weekly(cls, week: WeekRange, related_summary_ids: Iterable[str] = ()) -> "Summary":
        return cls(
            id=str(uuid4()),
            type=SummaryType.WEEKLY,
            week=week,
            related_summary_ids=related_summary_ids,
        )

    @classmethod
    def create_monthly(cls, month: YearMonth, related_summary_ids: Iterable[str] = ()) -> "Summary":
        return cls(
            id=str(uuid4()),
            type=SummaryType.MONTHLY,
            month=month,
            related_summary_ids=related_summary_ids,
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def type(self) -> SummaryType:
        return self._type

    @property
    def date(self) -> Optional[date]:
        return self._date

    @property
    def week(self) -> Optional[WeekRange]:
        return self._week

    @property
    def week_start(self) -> Optional[date]:
        return self._week.start if self._week else None

    @property
    def week_end(self) -> Optional[date]:
        return self._week.end if self._week else None

    @property
    def month(self) -> Optional[YearMonth]:
        return self._month

    @property
    def status(self) -> SummaryStatus:
        return self._status

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def related_summary_ids(self) -> Tuple[str, ...]:
        return tuple(self._related_summary_ids)

    @property
    def full_summary(self) -> str:
        return self._full_summary

    @property
    def short_summary(self) -> str:
        return self._short_summary

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    @property
    def is_done(self) -> bool:
        return self._status == SummaryStatus.DONE

    @property
    def period_key(self) -> str:
        """Canonical identity of the summary's period."""
        if self._type == SummaryType.DAILY:
            return self._date.isoformat()  # type: ignore[union-attr]
        if self._type == SummaryType.WEEKLY:
            return self._week.key  # type: ignore[union-attr]
        return self._month.key  # type: ignore[union-attr]

    @property
    def period_start(self) -> date:
        """First calendar day of the period."""
        if self._type == SummaryType.DAILY:
            return self._date  # type: ignore[return-value]
        if self._type == SummaryType.WEEKLY:
            return self._week.start  # type: ignore[union-attr]
        return self._month.first_day  # type: ignore[union-attr]

    @property
    def period_end(self) -> date:
        """Last calendar day of the period."""
        if self._type == SummaryType.DAILY:
            return self._date  # type: ignore[return-value]
        if self._type == SummaryType.WEEKLY:
            return self._week.end  # type: ignore[union-attr]
        return self._month.last_day  # type: ignore[union-attr]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_processing(self) -> None:
        """NEW or FAILED -> PROCESSING. No-op when already PROCESSING."""
        if self._status == SummaryStatus.PROCESSING:
            return
        if self._status == SummaryStatus.DONE:
            raise InvalidSummaryOperationError(
                f"Summary {self._id} is already completed"
            )
        self._error_message = None
        self._transition(SummaryStatus.PROCESSING)

    def complete(self, content: SummaryContent) -> None:
        """PROCESSING -> DONE with generated content."""
        if self._status != SummaryStatus.PROCESSING:
            raise InvalidSummaryOperationError(
                f"Cannot complete summary {self._id} in status {self._status.value}"
            )
        if content.is_blank:
            raise InvalidSummaryOperationError(
                f"Cannot complete summary {self._id} with empty content"
            )
        self._full_summary = content.full_summary.strip()
        self._short_summary = content.short_summary.strip()
        self._error_message = None
        self._transition(SummaryStatus.DONE)

    def mark_as_failed(self, error_message: str) -> None:
        """PROCESSING -> FAILED. The attempt is charged separately."""
        if self._status != SummaryStatus.PROCESSING:
            raise InvalidSummaryOperationError(
                f"Cannot fail summary {self._id} in status {self._status.value}"
            )
        self._error_message = error_message
        self._transition(SummaryStatus.FAILED)

    def register_failed_attempt(self, max_retries: int, error_message: Optional[str] = None) -> None:
        """
        Charge one failed processing attempt against the retry budget.

        Increments ``retry_count`` and re-derives the status: NEW while budget
        remains, FAILED once ``retry_count`` reaches ``max_retries``.
        """
        if self._status not in (SummaryStatus.PROCESSING, SummaryStatus.FAILED):
            raise InvalidSummaryOperationError(
                f"Cannot register a failed attempt for summary {self._id} "
                f"in status {self._status.value}"
            )
        self._retry_count += 1
        if error_message is not None:
            self._error_message = error_message
        if self._retry_count < max_retries:
            self._transition(SummaryStatus.NEW)
        else:
            self._transition(SummaryStatus.FAILED, force_event=True)

    def has_budget(self, max_retries: int) -> bool:
        return self._retry_count < max_retries

    def mark_exhausted(self) -> None:
        """Force FAILED for a summary whose retry budget is spent. Idempotent."""
        if self._status == SummaryStatus.FAILED:
            return
        if self._status == SummaryStatus.DONE:
            raise InvalidSummaryOperationError(
                f"Summary {self._id} is already completed"
            )
        self._transition(SummaryStatus.FAILED)

    def can_retry(self, max_retries: int) -> bool:
        return self._status == SummaryStatus.FAILED and self._retry_count < max_retries

    def retry(self, max_retries: int) -> None:
        """Manual retry: FAILED -> NEW while budget remains."""
        if self._status != SummaryStatus.FAILED:
            raise InvalidSummaryOperationError(
                f"Only failed summaries can be retried; {self._id} is {self._status.value}"
            )
        if self._retry_count >= max_retries:
            raise RetryBudgetExceededError(
                f"Summary {self._id} exhausted its retry budget",
                retry_count=self._retry_count,
                max_retries=max_retries,
            )
        self._error_message = None
        self._transition(SummaryStatus.NEW)

    def add_related_summary_ids(self, summary_ids: Iterable[str]) -> None:
        if self._type == SummaryType.DAILY:
            raise InvalidSummaryOperationError("Daily summaries have no related summaries")
        if self._append_related(summary_ids):
            self._touch()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _transition(self, new_status: SummaryStatus, force_event: bool = False) -> None:
        old_status = self._status
        self._status = new_status
        self._touch()
        if old_status != new_status or force_event:
            self.add_domain_event(SummaryStatusChanged(
                aggregate_id=self._id,
                summary_type=self._type.value,
                period_key=self.period_key,
                old_status=old_status.value,
                new_status=new_status.value,
                retry_count=self._retry_count,
            ))

    def _touch(self) -> None:
        self._updated_at = datetime.now(timezone.utc)
        self.increment_version()

    def _append_related(self, summary_ids: Iterable[str]) -> bool:
        added = False
        for summary_id in summary_ids:
            if summary_id not in self._related_summary_ids:
                self._related_summary_ids.append(summary_id)
                added = True
        return added

    def _check_period(self) -> None:
        populated = {
            SummaryType.DAILY: self._date is not None,
            SummaryType.WEEKLY: self._week is not None,
            SummaryType.MONTHLY: self._month is not None,
        }
        if not populated[self._type]:
            raise InvalidPeriodError(
                f"{self._type.value} summary requires its period",
                field_name=self._type.value.lower(),
            )
        extra = [t.value for t, present in populated.items() if present and t != self._type]
        if extra:
            raise InvalidPeriodError(
                f"{self._type.value} summary must not carry {', '.join(extra)} period fields",
                field_name=self._type.value.lower(),
            )

    def _validate_invariants(self) -> None:
        super()._validate_invariants()
        if self._retry_count < 0:
            self._add_invariant_violation("retry_count must not be negative")
        if self._type == SummaryType.DAILY and self._related_summary_ids:
            self._add_invariant_violation("daily summaries have no related summaries")
        if self._status == SummaryStatus.DONE and not self._full_summary.strip():
            self._add_invariant_violation("done summaries must carry content")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "type": self._type.value,
            "period_key": self.period_key,
            "date": self._date.isoformat() if self._date else None,
            "week_start": self.week_start.isoformat() if self._week else None,
            "week_end": self.week_end.isoformat() if self._week else None,
            "month": self._month.key if self._month else None,
            "status": self._status.value,
            "retry_count": self._retry_count,
            "related_summary_ids": list(self._related_summary_ids),
            "full_summary": self._full_summary,
            "short_summary": self._short_summary,
            "error_message": self._error_message,
            "created_at": self._created_at.isoformat(),
            "updated_at": self._updated_at.isoformat(),
        }
