"""Pacing policies deciding when accumulated text is committed.

A policy reacts to two inputs: ``on_fragment()`` after the session appends
new text, and timer ticks for the timed policies. It advances the committed
watermark through the ``commit`` coroutine supplied by the session.

Contract relied on by the session: once ``finish()`` returns, nothing is
pending. ``stop()`` is the cancellation path; it clears timers and releases a
``finish()`` that is waiting for a drain.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager

from streamchat.models.schemas import (
    CharRatePacing,
    ChunkThresholdPacing,
    ImmediatePacing,
    IntervalPacing,
    PacingConfig,
)
from streamchat.streaming.accumulator import Accumulator
from streamchat.streaming.scheduler import AsyncioScheduler, Scheduler, Timer

logger = logging.getLogger(__name__)

CommitFn = Callable[[int], Awaitable[None]]


class PacingPolicy:
    """Base policy: commits everything when the producer finishes."""

    def __init__(self, accumulator: Accumulator, commit: CommitFn) -> None:
        self._accumulator = accumulator
        self._commit = commit
        self._consuming = False

    def start(self) -> None:
        """Called once before the first fragment."""

    async def on_fragment(self) -> None:
        """Called after each fragment has been appended."""

    async def finish(self) -> None:
        """Called once the producer is done; commits whatever is left."""
        await self._commit_all()

    def stop(self) -> None:
        """Cancel any timers. Safe to call more than once."""

    @contextmanager
    def consuming(self) -> Iterator[None]:
        """Mark the read loop as busy appending a batch of fragments."""
        self._consuming = True
        try:
            yield
        finally:
            self._consuming = False

    async def _commit_all(self) -> None:
        await self._commit(len(self._accumulator))


class ImmediatePolicy(PacingPolicy):
    """Commit the full accumulator on every fragment."""

    async def on_fragment(self) -> None:
        await self._commit_all()


class ChunkThresholdPolicy(PacingPolicy):
    """Commit the full accumulator every ``n`` fragments.

    ``finish()`` always performs one final commit regardless of the counter.
    """

    def __init__(self, accumulator: Accumulator, commit: CommitFn, n: int) -> None:
        super().__init__(accumulator, commit)
        if n < 1:
            raise ValueError("Chunk threshold must be at least 1")
        self._n = n
        self._count = 0

    async def on_fragment(self) -> None:
        self._count += 1
        if self._count >= self._n:
            self._count = 0
            await self._commit_all()

    async def finish(self) -> None:
        self._count = 0
        await self._commit_all()


class TimedPolicy(PacingPolicy):
    """Base for policies driven by a periodic timer.

    A tick that fires while the previous one is still busy, or while the read
    loop is inside ``consuming()``, is skipped instead of queued. An exception
    raised by a tick stops the policy and is raised again from the next
    ``on_fragment()`` or ``finish()``.
    """

    def __init__(
        self,
        accumulator: Accumulator,
        commit: CommitFn,
        scheduler: Scheduler,
        period_ms: int,
    ) -> None:
        super().__init__(accumulator, commit)
        if period_ms < 1:
            raise ValueError("Tick period must be at least 1ms")
        self._scheduler = scheduler
        self._period = period_ms / 1000
        self._timer: Timer | None = None
        self._busy = False
        self._stopped = False
        self._error: Exception | None = None
        self.ticks = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        if self._timer is None and not self._stopped:
            self._timer = self._scheduler.every(self._period, self.tick)

    async def tick(self) -> None:
        """Timer entry point; no-op when stopped or when a tick is in flight."""
        if self._stopped:
            return
        if self._busy or self._consuming:
            self.skipped_ticks += 1
            return
        self._busy = True
        try:
            self.ticks += 1
            await self._advance()
        except Exception as e:
            logger.exception("Pacing tick failed")
            self._error = e
            self.stop()
        finally:
            self._busy = False

    async def _advance(self) -> None:
        raise NotImplementedError

    async def on_fragment(self) -> None:
        self._raise_pending_error()

    def stop(self) -> None:
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _raise_pending_error(self) -> None:
        if self._error is not None:
            error, self._error = self._error, None
            raise error


class IntervalPolicy(TimedPolicy):
    """Commit the full accumulator every ``ms`` milliseconds when text is pending."""

    def __init__(
        self,
        accumulator: Accumulator,
        commit: CommitFn,
        scheduler: Scheduler,
        ms: int,
    ) -> None:
        super().__init__(accumulator, commit, scheduler, ms)

    async def _advance(self) -> None:
        if self._accumulator.pending_length() > 0:
            await self._commit_all()

    async def finish(self) -> None:
        self.stop()
        self._raise_pending_error()
        await self._commit_all()


class CharRatePolicy(TimedPolicy):
    """Reveal at most ``chars`` characters every ``tick_ms`` milliseconds.

    After the producer finishes the policy drains: it keeps ticking at the same
    cadence until nothing is pending, and ``finish()`` waits for that.
    """

    def __init__(
        self,
        accumulator: Accumulator,
        commit: CommitFn,
        scheduler: Scheduler,
        chars: int,
        tick_ms: int,
    ) -> None:
        super().__init__(accumulator, commit, scheduler, tick_ms)
        if chars < 1:
            raise ValueError("Characters per tick must be at least 1")
        self._chars = chars
        self._producer_done = False
        self._drained = asyncio.Event()

    @property
    def draining(self) -> bool:
        return self._producer_done and not self._drained.is_set()

    async def _advance(self) -> None:
        pending = self._accumulator.pending_length()
        if pending > 0:
            await self._commit(self._accumulator.committed + min(self._chars, pending))
        if self._producer_done and self._accumulator.pending_length() == 0:
            self.stop()

    async def finish(self) -> None:
        self._producer_done = True
        if self._accumulator.pending_length() == 0:
            self.stop()
        else:
            self.start()
            await self._drained.wait()
        self._raise_pending_error()

    def stop(self) -> None:
        super().stop()
        self._drained.set()


def build_policy(
    config: PacingConfig,
    accumulator: Accumulator,
    commit: CommitFn,
    scheduler: Scheduler | None = None,
) -> PacingPolicy:
    """Create the policy selected by a pacing config.

    Args:
        config: Pacing configuration variant.
        accumulator: Session accumulator the policy reads.
        commit: Coroutine advancing the committed watermark.
        scheduler: Timer source for timed policies (asyncio if omitted).

    Returns:
        A policy instance scoped to one session.
    """
    if isinstance(config, ImmediatePacing):
        return ImmediatePolicy(accumulator, commit)
    if isinstance(config, ChunkThresholdPacing):
        return ChunkThresholdPolicy(accumulator, commit, config.n)

    scheduler = scheduler or AsyncioScheduler()
    if isinstance(config, IntervalPacing):
        return IntervalPolicy(accumulator, commit, scheduler, config.ms)
    if isinstance(config, CharRatePacing):
        return CharRatePolicy(accumulator, commit, scheduler, config.chars, config.tick_ms)
    raise ValueError(f"Unsupported pacing config: {config!r}")
