"""
Summarium - Clock and Timer Abstractions

The summary service never reads the wall clock or creates timers directly.
It receives a ``Clock`` (current time, today, sleep) and a ``Timer``
(recurring callbacks) so tests can drive virtual time deterministically.

- SystemClock / AsyncioTimer: production implementations on the running loop
- ManualClock / ManualTimer: virtual time, sleeps recorded, ticks fired by hand
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional, Set

logger = logging.getLogger("summarium.core.clock")

TickCallback = Callable[[], Awaitable[None]]


class Clock(ABC):
    """Source of time for the engine."""

    @abstractmethod
    def now(self) -> datetime:
        """Current UTC timestamp."""
        pass

    def today(self) -> date:
        return self.now().date()

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        pass


class SystemClock(Clock):
    """Wall clock backed by asyncio.sleep."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


class ManualClock(Clock):
    """
    Virtual clock for tests.

    ``sleep`` advances virtual time instantly and yields once to the event
    loop so other tasks can interleave. Every requested sleep is recorded.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now = self._now + timedelta(seconds=seconds)

    def set(self, moment: datetime) -> None:
        self._now = moment

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class TimerHandle(ABC):
    """Handle to a recurring callback registration."""

    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class Timer(ABC):
    """Schedules recurring async callbacks."""

    @abstractmethod
    def call_every(self, interval_seconds: float, callback: TickCallback) -> TimerHandle:
        """
        Invoke ``callback`` every ``interval_seconds`` until cancelled.

        Each tick is started independently of the previous one, so a slow
        callback may overlap the next tick. Callers guard against that.
        """
        pass


class _AsyncioTimerHandle(TimerHandle):
    def __init__(self, task: asyncio.Task):
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()

    @property
    def active(self) -> bool:
        return not self._task.done()


class AsyncioTimer(Timer):
    """Recurring timer on the running event loop."""

    def __init__(self) -> None:
        self._inflight: Set[asyncio.Task] = set()

    def call_every(self, interval_seconds: float, callback: TickCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(interval_seconds, callback))
        return _AsyncioTimerHandle(task)

    async def _run(self, interval_seconds: float, callback: TickCallback) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            # Ticks are detached; cancelling the timer leaves them running.
            tick = asyncio.get_running_loop().create_task(callback())
            self._inflight.add(tick)
            tick.add_done_callback(self._on_tick_done)

    def _on_tick_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timer tick raised: %s", exc, exc_info=exc)


class _ManualRegistration(TimerHandle):
    def __init__(self, interval_seconds: float, callback: TickCallback):
        self.interval_seconds = interval_seconds
        self.callback = callback
        self._active = True

    def cancel(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active


class ManualTimer(Timer):
    """Timer whose ticks are fired explicitly by tests."""

    def __init__(self) -> None:
        self.registrations: List[_ManualRegistration] = []

    def call_every(self, interval_seconds: float, callback: TickCallback) -> TimerHandle:
        registration = _ManualRegistration(interval_seconds, callback)
        self.registrations.append(registration)
        return registration

    @property
    def active_registrations(self) -> List[_ManualRegistration]:
        return [r for r in self.registrations if r.active]

    def fire(self, interval_seconds: Optional[float] = None) -> List[asyncio.Task]:
        """
        Start one tick of every active registration (optionally only those
        with the given interval). Returns the started tasks.
        """
        loop = asyncio.get_running_loop()
        tasks = []
        for registration in self.active_registrations:
            if interval_seconds is not None and registration.interval_seconds != interval_seconds:
                continue
            tasks.append(loop.create_task(registration.callback()))
        return tasks
