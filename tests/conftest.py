"""
Summarium - Test Configuration

Pytest fixtures and configuration for all tests.
"""
import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set
from uuid import uuid4

import pytest

from core.clock import ManualClock, ManualTimer
from core.errors import ProcessingFailureError
from core.types import Result
from db.memory import InMemorySummaryRepository
from domain.entities import Summary, SummaryContent, SummaryStatus, SummaryType
from domain.periods import WeekRange, YearMonth
from pipeline.content import IContentGenerator, SummarizationRequest
from pipeline.create_summary import CreateSummary
from pipeline.dependencies import SummaryDependencies
from pipeline.event_bus import InMemoryEventBus
from pipeline.force_summarization import ForceSummarization
from pipeline.process_summary import ProcessSummary
from pipeline.schedule_summaries import ScheduleSummaries
from pipeline.summary_service import SummaryService, SummaryServiceConfig


class ScriptedGenerator(IContentGenerator):
    """
    Content generator with per-period scripted failures.

    When ``gate`` is set, every call blocks until the event is set, which
    keeps a queue pass open for concurrency tests. ``hold`` does the same
    for a single period.
    """

    def __init__(self) -> None:
        self.calls: List[str] = []
        self._failures: Dict[str, int] = {}
        self._always_failing: Set[str] = set()
        self.raise_on: Set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self._gates: Dict[str, asyncio.Event] = {}

    def fail(self, period_key: str, times: int = 1) -> None:
        self._failures[period_key] = times

    def fail_always(self, period_key: str) -> None:
        self._always_failing.add(period_key)

    def hold(self, period_key: str) -> asyncio.Event:
        """Block generation for one period until the returned event is set."""
        self._gates[period_key] = asyncio.Event()
        return self._gates[period_key]

    def heal(self, period_key: str) -> None:
        self._failures.pop(period_key, None)
        self._always_failing.discard(period_key)

    async def generate(self, request: SummarizationRequest) -> Result[SummaryContent]:
        self.calls.append(request.period_key)
        gate = self._gates.get(request.period_key, self.gate)
        if gate is not None:
            await gate.wait()

        if request.period_key in self.raise_on:
            raise RuntimeError(f"generator crashed on {request.period_key}")

        remaining = self._failures.get(request.period_key, 0)
        if remaining > 0 or request.period_key in self._always_failing:
            if remaining > 0:
                self._failures[request.period_key] = remaining - 1
            return Result.from_exception(ProcessingFailureError(
                f"scripted failure for {request.period_key}",
                summary_id=request.summary_id,
            ))

        children = f" ({len(request.child_summaries)} children)" if request.child_summaries else ""
        return Result.success(SummaryContent(
            full_summary=f"Full summary of {request.period_key}{children}",
            short_summary=f"Short {request.period_key}",
        ))


# =============================================================================
# INFRASTRUCTURE FIXTURES
# =============================================================================


@pytest.fixture
def repository() -> InMemorySummaryRepository:
    return InMemorySummaryRepository()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def clock() -> ManualClock:
    """Virtual clock set to Sunday 2024-01-07, noon UTC."""
    return ManualClock(datetime(2024, 1, 7, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def timer() -> ManualTimer:
    return ManualTimer()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


# =============================================================================
# OPERATION FIXTURES
# =============================================================================


@pytest.fixture
def create_summary(repository) -> CreateSummary:
    return CreateSummary(repository)


@pytest.fixture
def process_summary(repository, generator, event_bus) -> ProcessSummary:
    return ProcessSummary(repository, generator, event_bus)


@pytest.fixture
def schedule_summaries(repository, create_summary, event_bus, clock) -> ScheduleSummaries:
    """Scheduler with a one-week lookback, 2024-01-01..2024-01-07 by default."""
    return ScheduleSummaries(repository, create_summary, event_bus, clock=clock, lookback_days=6)


@pytest.fixture
def force_summarization(create_summary, process_summary, repository) -> ForceSummarization:
    return ForceSummarization(create_summary, process_summary, SummaryDependencies(repository))


@pytest.fixture
def make_service(
    repository,
    create_summary,
    process_summary,
    schedule_summaries,
    force_summarization,
    event_bus,
    clock,
    timer,
) -> Callable[..., SummaryService]:
    """Factory for services with custom configuration."""

    def factory(**overrides) -> SummaryService:
        settings = {
            "auto_schedule_enabled": False,
            "auto_process_enabled": False,
            "max_retries": 3,
            "retry_delay_ms": 5000,
            "process_interval_ms": 10000,
            "schedule_interval_ms": 3_600_000,
        }
        settings.update(overrides)
        return SummaryService(
            repository,
            create_summary,
            process_summary,
            schedule_summaries,
            force_summarization,
            event_bus,
            config=SummaryServiceConfig(**settings),
            clock=clock,
            timer=timer,
        )

    return factory


@pytest.fixture
def service(make_service) -> SummaryService:
    return make_service()


# =============================================================================
# DATA HELPERS
# =============================================================================


@pytest.fixture
def store(repository) -> Callable:
    """Persist a summary directly in the given state, bypassing the operations."""

    async def store(
        period,
        status: SummaryStatus = SummaryStatus.DONE,
        retry_count: int = 0,
        related_summary_ids=(),
    ) -> Summary:
        if isinstance(period, WeekRange):
            fields = {"type": SummaryType.WEEKLY, "week": period}
        elif isinstance(period, YearMonth):
            fields = {"type": SummaryType.MONTHLY, "month": period}
        else:
            fields = {"type": SummaryType.DAILY, "date": period}
        done = status == SummaryStatus.DONE
        key = str(period)
        summary = Summary(
            id=str(uuid4()),
            status=status,
            retry_count=retry_count,
            related_summary_ids=related_summary_ids,
            full_summary=f"Full summary of {key}" if done else "",
            short_summary=f"Short {key}" if done else "",
            **fields,
        )
        saved = await repository.save(summary)
        assert saved.is_success
        return summary

    return store
