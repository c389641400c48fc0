"""Timer scheduling for pacing policies.

Policies never touch the event loop clock directly. They ask a Scheduler for
a periodic timer, so production code runs on asyncio while tests drive a
virtual clock.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class Timer(ABC):
    """Handle for a periodic timer."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the timer. Calling it more than once is harmless."""


class Scheduler(ABC):
    """Creates periodic timers."""

    @abstractmethod
    def every(self, seconds: float, callback: TickCallback) -> Timer:
        """Call ``callback`` every ``seconds`` until the timer is cancelled."""


class _AsyncioTimer(Timer):
    def __init__(self, seconds: float, callback: TickCallback) -> None:
        self._seconds = seconds
        self._callback = callback
        self._ticks: set[asyncio.Task[None]] = set()
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._seconds)
            # Each tick runs as its own task, so a slow tick can overlap the next
            tick = asyncio.create_task(self._callback())
            self._ticks.add(tick)
            tick.add_done_callback(self._tick_done)

    def _tick_done(self, task: asyncio.Task[None]) -> None:
        self._ticks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Timer callback failed", exc_info=task.exception())

    def cancel(self) -> None:
        self._task.cancel()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def every(self, seconds: float, callback: TickCallback) -> Timer:
        return _AsyncioTimer(seconds, callback)


class _ManualTimer(Timer):
    def __init__(self, seconds: float, callback: TickCallback, due: float) -> None:
        self.seconds = seconds
        self.callback = callback
        self.due = due
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Virtual clock scheduler.

    Time only moves when ``advance()`` is awaited. Due timers fire in order of
    their due time and each callback is awaited before the next one fires.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[_ManualTimer] = []

    @property
    def active_timers(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    def every(self, seconds: float, callback: TickCallback) -> Timer:
        if seconds <= 0:
            raise ValueError("Timer period must be positive")
        timer = _ManualTimer(seconds, callback, self.now + seconds)
        self._timers.append(timer)
        return timer

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that comes due."""
        target = self.now + seconds
        while True:
            self._timers = [timer for timer in self._timers if not timer.cancelled]
            due = [timer for timer in self._timers if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            timer.due += timer.seconds
            await timer.callback()
            # Let tasks woken by the tick observe its effects
            await asyncio.sleep(0)
        self.now = target
        await asyncio.sleep(0)
