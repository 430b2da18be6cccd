"""
Summarium - Unified Error Handling

Error hierarchy for the summary engine. Every error carries a stable
``error_code`` so that callers branching on a failed ``Result`` can tell
an invalid period from a persistence failure without string matching.

Codes:
- INVALID_PERIOD: malformed date, week or month input
- DEPENDENCY_INCOMPLETE: child summaries missing or not DONE
- PERSISTENCE_ERROR: repository read/write failure
- PROCESSING_FAILURE: content generation failed
- RETRY_BUDGET_EXCEEDED: manual retry attempted past the retry budget
- INVALID_OPERATION: illegal lifecycle transition
- CONFIG_ERROR: invalid configuration value
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode


class ErrorSeverity(Enum):
    """Error severity levels for prioritized handling."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Structured context for error debugging and tracing."""

    operation: str
    component: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    summary_id: Optional[str] = None
    period_key: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "component": self.component,
            "timestamp": self.timestamp.isoformat(),
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "summary_id": self.summary_id,
            "period_key": self.period_key,
            "metadata": self.metadata,
            "stack_trace": self.stack_trace,
        }

    @classmethod
    def from_current_span(
        cls,
        operation: str,
        component: str,
        **kwargs: Any
    ) -> "ErrorContext":
        """Create context from current OpenTelemetry span."""
        span = trace.get_current_span()
        trace_id = None
        span_id = None

        if span and span.is_recording():
            ctx = span.get_span_context()
            if ctx.is_valid:
                trace_id = format(ctx.trace_id, "032x")
                span_id = format(ctx.span_id, "016x")

        return cls(
            operation=operation,
            component=component,
            trace_id=trace_id,
            span_id=span_id,
            stack_trace=traceback.format_exc(),
            **kwargs
        )


class SummariumError(Exception):
    """
    Base exception for all Summarium errors.

    Provides:
    - Stable error code
    - Structured error context
    - Severity level
    - Chained exception support
    - OpenTelemetry span recording
    """

    default_severity: ErrorSeverity = ErrorSeverity.ERROR
    error_code: str = "SUMMARIUM_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.severity = severity or self.default_severity
        self.cause = cause
        self.recoverable = recoverable
        self.suggestions = suggestions or []
        self.timestamp = datetime.now(timezone.utc)

        self._record_to_span()

    def _record_to_span(self) -> None:
        """Record exception to current OpenTelemetry span."""
        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_status(Status(StatusCode.ERROR, self.message))
            span.record_exception(self)
            span.set_attribute("error.code", self.error_code)
            span.set_attribute("error.severity", self.severity.value)
            span.set_attribute("error.recoverable", self.recoverable)
            if self.context:
                span.set_attribute("error.component", self.context.component)
                span.set_attribute("error.operation", self.context.operation)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for CLI and log output."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f" (component: {self.context.component})")
        if self.cause:
            parts.append(f" [caused by: {self.cause}]")
        return "".join(parts)


class ConfigError(SummariumError):
    """Configuration-related errors."""

    error_code = "CONFIG_ERROR"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.config_key = config_key
        self.actual_value = actual_value


class InvalidPeriodError(SummariumError):
    """Malformed date, week or month input."""

    error_code = "INVALID_PERIOD"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        actual_value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field_name = field_name
        self.actual_value = actual_value


class DependencyIncompleteError(SummariumError):
    """Child-tier summaries are missing or not yet DONE."""

    error_code = "DEPENDENCY_INCOMPLETE"
    default_severity = ErrorSeverity.DEBUG

    def __init__(
        self,
        message: str,
        period_key: Optional[str] = None,
        missing: Optional[List[str]] = None,
        **kwargs: Any,
    ):
        super().__init__(message, recoverable=True, **kwargs)
        self.period_key = period_key
        self.missing = missing or []


class PersistenceError(SummariumError):
    """Repository read or write failure."""

    error_code = "PERSISTENCE_ERROR"
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, recoverable=True, **kwargs)
        self.operation = operation


class SummaryNotFoundError(PersistenceError):
    """Lookup by id found nothing."""

    def __init__(self, summary_id: str, **kwargs: Any):
        super().__init__(f"Summary not found: {summary_id}", operation="find_by_id", **kwargs)
        self.summary_id = summary_id


class ConcurrentModificationError(PersistenceError):
    """Save refused because the stored summary changed since it was read."""

    error_code = "CONCURRENT_MODIFICATION"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        summary_id: str,
        expected_version: int,
        actual_version: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(
            f"Summary {summary_id} changed underneath: expected version "
            f"{expected_version}, found {actual_version}",
            operation="save",
            **kwargs,
        )
        self.summary_id = summary_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ProcessingFailureError(SummariumError):
    """Content generation failed for one summary."""

    error_code = "PROCESSING_FAILURE"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        summary_id: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, recoverable=True, **kwargs)
        self.summary_id = summary_id


class RetryBudgetExceededError(SummariumError):
    """Manual retry attempted for a summary that spent its retry budget."""

    error_code = "RETRY_BUDGET_EXCEEDED"
    default_severity = ErrorSeverity.INFO

    def __init__(
        self,
        message: str,
        retry_count: int = 0,
        max_retries: int = 0,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.retry_count = retry_count
        self.max_retries = max_retries


class InvalidSummaryOperationError(SummariumError):
    """Illegal lifecycle transition on a summary."""

    error_code = "INVALID_OPERATION"
    default_severity = ErrorSeverity.WARNING


def error_code_of(error: Optional[BaseException]) -> Optional[str]:
    """Return the taxonomy code of an exception, if it has one."""
    if error is None:
        return None
    return getattr(error, "error_code", None)
