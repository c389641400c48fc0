"""Unit tests for pacing policies and schedulers."""

import asyncio

import pytest

from streamchat.models.schemas import (
    CharRatePacing,
    ChunkThresholdPacing,
    ImmediatePacing,
    IntervalPacing,
)
from streamchat.streaming.accumulator import Accumulator
from streamchat.streaming.pacing import (
    CharRatePolicy,
    ChunkThresholdPolicy,
    ImmediatePolicy,
    IntervalPolicy,
    build_policy,
)
from streamchat.streaming.scheduler import AsyncioScheduler, ManualScheduler


class CommitLog:
    """Commit function recording every requested length."""

    def __init__(self, acc: Accumulator) -> None:
        self.acc = acc
        self.calls: list[int] = []
        self.committed: list[str] = []

    async def __call__(self, length: int) -> None:
        self.calls.append(length)
        self.acc.commit(length)
        self.committed.append(self.acc.committed_text)


@pytest.fixture
def acc() -> Accumulator:
    return Accumulator()


@pytest.fixture
def log(acc: Accumulator) -> CommitLog:
    return CommitLog(acc)


class TestImmediatePolicy:
    """Tests for eager per-fragment commits."""

    async def test_commits_every_fragment(self, acc: Accumulator, log: CommitLog) -> None:
        policy = ImmediatePolicy(acc, log)
        for part in ["Hel", "lo"]:
            acc.append(part)
            await policy.on_fragment()

        assert log.committed == ["Hel", "Hello"]

    async def test_finish_leaves_nothing_pending(self, acc: Accumulator, log: CommitLog) -> None:
        policy = ImmediatePolicy(acc, log)
        acc.append("tail")
        await policy.finish()

        assert acc.pending() == ""


class TestChunkThresholdPolicy:
    """Tests for counter-gated batching."""

    async def test_scenario_commits_every_second_fragment(self, acc: Accumulator, log: CommitLog) -> None:
        """Hel/lo /Wor/ld! with n=2 commits "Hello " then "Hello World!"."""
        policy = ChunkThresholdPolicy(acc, log, n=2)
        for part in ["Hel", "lo ", "Wor", "ld!"]:
            acc.append(part)
            await policy.on_fragment()
        await policy.finish()

        assert log.committed[:2] == ["Hello ", "Hello World!"]
        assert log.committed[-1] == "Hello World!"

    @pytest.mark.parametrize("n", [1, 2, 3, 4])
    @pytest.mark.parametrize("m", [0, 1, 2, 3, 5, 8, 9])
    async def test_commit_count(self, acc: Accumulator, log: CommitLog, n: int, m: int) -> None:
        """m fragments give floor(m/n) threshold commits plus one final commit."""
        policy = ChunkThresholdPolicy(acc, log, n=n)
        for _ in range(m):
            acc.append("x")
            await policy.on_fragment()
        threshold_commits = len(log.calls)
        await policy.finish()

        assert threshold_commits == m // n
        assert len(log.calls) == m // n + 1
        assert acc.pending() == ""

    def test_rejects_zero_threshold(self, acc: Accumulator, log: CommitLog) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            ChunkThresholdPolicy(acc, log, n=0)


class TestIntervalPolicy:
    """Tests for fixed-interval commits."""

    async def test_ticks_commit_pending_text(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = IntervalPolicy(acc, log, scheduler, ms=100)
        policy.start()

        acc.append("abc")
        await scheduler.advance(0.1)
        assert log.calls == [3]

        await scheduler.advance(0.1)
        assert log.calls == [3], "tick without pending text must not commit"

        acc.append("de")
        await scheduler.advance(0.1)
        assert log.calls == [3, 5]

    async def test_no_commit_before_first_tick(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = IntervalPolicy(acc, log, scheduler, ms=100)
        policy.start()
        acc.append("abc")
        await policy.on_fragment()
        await scheduler.advance(0.05)

        assert log.calls == []

    async def test_finish_stops_timer_and_commits_rest(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = IntervalPolicy(acc, log, scheduler, ms=100)
        policy.start()
        acc.append("abc")
        await policy.finish()

        assert scheduler.active_timers == 0
        assert acc.pending() == ""
        assert policy.running is False

    async def test_overlapping_tick_is_skipped(self, acc: Accumulator, scheduler: ManualScheduler) -> None:
        """A tick firing while the previous commit is unfinished does nothing."""
        gate = asyncio.Event()
        calls: list[int] = []

        async def slow_commit(length: int) -> None:
            calls.append(length)
            await gate.wait()
            acc.commit(length)

        policy = IntervalPolicy(acc, slow_commit, scheduler, ms=100)
        acc.append("abc")

        first = asyncio.create_task(policy.tick())
        await asyncio.sleep(0)
        await policy.tick()

        assert calls == [3]
        assert policy.skipped_ticks == 1

        gate.set()
        await first
        await policy.tick()

        assert calls == [3]
        assert acc.pending() == ""

    async def test_tick_while_read_loop_consuming_is_skipped(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        """Ticks wait for the read loop to finish appending a batch."""
        policy = IntervalPolicy(acc, log, scheduler, ms=100)
        policy.start()

        with policy.consuming():
            acc.append("abc")
            await scheduler.advance(0.1)

        assert log.calls == []
        assert policy.skipped_ticks == 1

        await scheduler.advance(0.1)

        assert log.calls == [3]

    async def test_tick_after_stop_is_noop(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = IntervalPolicy(acc, log, scheduler, ms=100)
        policy.start()
        acc.append("abc")
        policy.stop()
        policy.stop()
        await policy.tick()

        assert log.calls == []

    async def test_tick_error_is_raised_from_finish(
        self, acc: Accumulator, scheduler: ManualScheduler
    ) -> None:
        async def broken_commit(length: int) -> None:
            raise RuntimeError("sink exploded")

        policy = IntervalPolicy(acc, broken_commit, scheduler, ms=100)
        policy.start()
        acc.append("abc")
        await scheduler.advance(0.1)

        assert policy.running is False
        with pytest.raises(RuntimeError, match="sink exploded"):
            await policy.finish()


class TestCharRatePolicy:
    """Tests for constant-rate character reveal."""

    async def test_reveals_at_most_chars_per_tick(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = CharRatePolicy(acc, log, scheduler, chars=3, tick_ms=50)
        policy.start()
        acc.append("Hello World!")

        for _ in range(4):
            await scheduler.advance(0.05)

        assert log.calls == [3, 6, 9, 12]

    async def test_reveal_ignores_fragment_boundaries(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = CharRatePolicy(acc, log, scheduler, chars=4, tick_ms=50)
        policy.start()
        acc.append("ab")
        await scheduler.advance(0.05)
        acc.append("cdefgh")
        await scheduler.advance(0.05)

        assert log.committed == ["ab", "abcdef"]

    async def test_finish_waits_for_drain(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        """After the producer is done, ticks continue until nothing is pending."""
        policy = CharRatePolicy(acc, log, scheduler, chars=3, tick_ms=50)
        policy.start()
        acc.append("Hello")
        await scheduler.advance(0.05)

        finishing = asyncio.create_task(policy.finish())
        await asyncio.sleep(0)

        assert not finishing.done()
        assert policy.draining is True

        await scheduler.advance(0.05)
        await asyncio.wait_for(finishing, timeout=1.0)

        assert acc.pending() == ""
        assert log.calls == [3, 5]
        assert scheduler.active_timers == 0

    async def test_finish_with_nothing_pending_returns_immediately(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = CharRatePolicy(acc, log, scheduler, chars=3, tick_ms=50)
        policy.start()
        await policy.finish()

        assert scheduler.active_timers == 0
        assert log.calls == []

    async def test_stop_releases_waiting_finish(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler
    ) -> None:
        policy = CharRatePolicy(acc, log, scheduler, chars=1, tick_ms=50)
        policy.start()
        acc.append("long answer")

        finishing = asyncio.create_task(policy.finish())
        await asyncio.sleep(0)
        policy.stop()
        await asyncio.wait_for(finishing, timeout=1.0)

        assert acc.pending() == "long answer"

    @pytest.mark.parametrize("chars", [0, -1])
    def test_rejects_invalid_rate(self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler, chars: int) -> None:
        with pytest.raises(ValueError):
            CharRatePolicy(acc, log, scheduler, chars=chars, tick_ms=50)


class TestBuildPolicy:
    """Tests for selecting a policy from its config."""

    @pytest.mark.parametrize(("config", "policy_type"), [
        (ImmediatePacing(), ImmediatePolicy),
        (ChunkThresholdPacing(n=3), ChunkThresholdPolicy),
        (IntervalPacing(ms=20), IntervalPolicy),
        (CharRatePacing(chars=2, tick_ms=30), CharRatePolicy),
    ])
    def test_selects_policy_type(
        self, acc: Accumulator, log: CommitLog, scheduler: ManualScheduler, config, policy_type
    ) -> None:
        assert isinstance(build_policy(config, acc, log, scheduler), policy_type)


class TestSchedulers:
    """Tests for the virtual and asyncio schedulers."""

    async def test_manual_scheduler_fires_due_timers_in_order(self, scheduler: ManualScheduler) -> None:
        fired: list[str] = []

        async def fast() -> None:
            fired.append("fast")

        async def slow() -> None:
            fired.append("slow")

        scheduler.every(0.5, slow)
        scheduler.every(0.25, fast)
        await scheduler.advance(1.0)

        assert fired == ["fast", "slow", "fast", "fast", "slow", "fast"]
        assert scheduler.now == 1.0

    async def test_manual_timer_cancel(self, scheduler: ManualScheduler) -> None:
        fired: list[int] = []

        async def tick() -> None:
            fired.append(1)

        timer = scheduler.every(0.1, tick)
        await scheduler.advance(0.1)
        timer.cancel()
        await scheduler.advance(1.0)

        assert fired == [1]
        assert scheduler.active_timers == 0

    def test_manual_scheduler_rejects_non_positive_period(self, scheduler: ManualScheduler) -> None:
        async def tick() -> None:
            pass

        with pytest.raises(ValueError):
            scheduler.every(0, tick)

    async def test_asyncio_scheduler_ticks_until_cancelled(self) -> None:
        fired: list[int] = []

        async def tick() -> None:
            fired.append(1)

        timer = AsyncioScheduler().every(0.01, tick)
        await asyncio.sleep(0.08)
        timer.cancel()
        await asyncio.sleep(0)
        count = len(fired)
        await asyncio.sleep(0.05)

        assert count >= 1
        assert len(fired) == count
