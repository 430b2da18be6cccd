"""
Summarium - Core Module

Foundational pieces shared by every other package:
- Unified error handling (taxonomy codes recorded on spans)
- The ``Result`` sum type returned at repository and operation boundaries
- Injectable clock and timer abstractions

Core depends on no other Summarium package.
"""

from core.clock import (
    AsyncioTimer,
    Clock,
    ManualClock,
    ManualTimer,
    SystemClock,
    Timer,
    TimerHandle,
)
from core.errors import (
    ConcurrentModificationError,
    ConfigError,
    DependencyIncompleteError,
    ErrorContext,
    ErrorSeverity,
    InvalidPeriodError,
    InvalidSummaryOperationError,
    PersistenceError,
    ProcessingFailureError,
    RetryBudgetExceededError,
    SummariumError,
    SummaryNotFoundError,
)
from core.types import Result

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "ManualClock",
    "Timer",
    "TimerHandle",
    "AsyncioTimer",
    "ManualTimer",
    # Errors
    "SummariumError",
    "ConfigError",
    "ConcurrentModificationError",
    "InvalidPeriodError",
    "DependencyIncompleteError",
    "PersistenceError",
    "SummaryNotFoundError",
    "ProcessingFailureError",
    "RetryBudgetExceededError",
    "InvalidSummaryOperationError",
    "ErrorContext",
    "ErrorSeverity",
    # Types
    "Result",
]
