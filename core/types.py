"""
Summarium - Centralized Type Definitions

Provides the ``Result`` sum type used at every repository and operation
boundary, plus the small type aliases shared across packages.

Usage:
    from core.types import Result

    async def find(summary_id: str) -> Result[Summary]:
        ...

    result = await find("abc")
    if result.is_failure:
        logger.warning("lookup failed", code=result.error_code)
"""
from __future__ import annotations

from typing import Callable, Generic, Optional, TypeVar

from core.errors import error_code_of

# =============================================================================
# TYPE ALIASES
# =============================================================================

SummaryId = str  # UUID4 string
PeriodKey = str  # "2024-01-05", "2024-01-01_2024-01-07", "2024-01"
Milliseconds = int

T = TypeVar("T")
R = TypeVar("R")


# =============================================================================
# RESULT TYPE
# =============================================================================


class Result(Generic[T]):
    """
    Explicit success/error result type.

    Usage:
        result = await repository.find_by_id(summary_id)
        if result.is_success:
            print(result.value)
        else:
            print(result.error)
    """

    def __init__(
        self,
        value: Optional[T] = None,
        error: Optional[str] = None,
        exception: Optional[Exception] = None,
    ):
        self._value = value
        self._error = error
        self._exception = exception

    @property
    def is_success(self) -> bool:
        return self._error is None and self._exception is None

    @property
    def is_failure(self) -> bool:
        return not self.is_success

    @property
    def value(self) -> T:
        if self.is_failure:
            raise ValueError(f"Cannot get value from failed result: {self._error}")
        return self._value  # type: ignore

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def exception(self) -> Optional[Exception]:
        return self._exception

    @property
    def error_code(self) -> Optional[str]:
        """Taxonomy code of the failure (``PERSISTENCE_ERROR`` etc.)."""
        return error_code_of(self._exception)

    def unwrap(self) -> T:
        """Get value or raise exception."""
        if self._exception:
            raise self._exception
        if self._error:
            raise ValueError(self._error)
        return self._value  # type: ignore

    def unwrap_or(self, default: T) -> T:
        """Get value or return default."""
        if self.is_failure:
            return default
        return self._value  # type: ignore

    def map(self, fn: Callable[[T], R]) -> "Result[R]":
        """Transform value if successful."""
        if self.is_failure:
            return Result(error=self._error, exception=self._exception)
        return Result(value=fn(self._value))  # type: ignore

    def cast(self) -> "Result[R]":
        """Re-type a failure so it can be propagated unchanged."""
        return Result(value=None, error=self._error, exception=self._exception)

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":  # type: ignore[assignment]
        """Create successful result."""
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "Result[T]":
        """Create failed result with error message."""
        return cls(error=error)

    @classmethod
    def from_exception(cls, exception: Exception) -> "Result[T]":
        """Create failed result from exception."""
        return cls(error=str(exception), exception=exception)

    def __repr__(self) -> str:
        if self.is_success:
            return f"Result.success({self._value!r})"
        return f"Result.failure({self._error!r})"
