"""Unit tests for relayreader.queue."""

from __future__ import annotations

import asyncio

import pytest

from relayreader.queue import AdmissionQueue, CancellationToken


class _ConcurrencyTracker:
    """Records how many tasks run at once and in which order they start."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.started: list[int] = []

    def task(self, n: int, gate: asyncio.Event | None = None):
        async def run() -> int:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.started.append(n)
            try:
                if gate is not None:
                    await gate.wait()
                for _ in range(3):
                    await asyncio.sleep(0)
            finally:
                self.active -= 1
            return n

        return run


class TestAdmissionQueue:
    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            AdmissionQueue(0)

    async def test_never_exceeds_max_concurrent(self) -> None:
        queue = AdmissionQueue(3)
        tracker = _ConcurrencyTracker()
        results = await asyncio.gather(*(queue.submit(tracker.task(i)) for i in range(10)))

        assert results == list(range(10))
        assert tracker.peak == 3
        assert queue.active_count == 0
        assert queue.waiting_count == 0

    async def test_waiters_start_in_arrival_order(self) -> None:
        queue = AdmissionQueue(1)
        tracker = _ConcurrencyTracker()
        await asyncio.gather(*(queue.submit(tracker.task(i)) for i in range(6)))
        assert tracker.started == [0, 1, 2, 3, 4, 5]

    async def test_excess_submissions_wait(self) -> None:
        queue = AdmissionQueue(2)
        tracker = _ConcurrencyTracker()
        gate = asyncio.Event()
        tasks = [asyncio.ensure_future(queue.submit(tracker.task(i, gate))) for i in range(5)]
        await asyncio.sleep(0)

        assert queue.active_count == 2
        assert queue.waiting_count == 3
        assert tracker.started == [0, 1]

        gate.set()
        await asyncio.gather(*tasks)
        assert queue.active_count == 0

    async def test_failure_releases_slot_and_propagates(self) -> None:
        queue = AdmissionQueue(1)

        async def boom() -> None:
            raise RuntimeError("boom")

        async def ok() -> str:
            return "ok"

        first = asyncio.ensure_future(queue.submit(boom))
        second = asyncio.ensure_future(queue.submit(ok))

        with pytest.raises(RuntimeError, match="boom"):
            await first
        assert await second == "ok"
        assert queue.active_count == 0

    async def test_cancelled_waiter_leaves_line(self) -> None:
        queue = AdmissionQueue(1)
        tracker = _ConcurrencyTracker()
        gate = asyncio.Event()
        running = asyncio.ensure_future(queue.submit(tracker.task(0, gate)))
        waiting = asyncio.ensure_future(queue.submit(tracker.task(1)))
        behind = asyncio.ensure_future(queue.submit(tracker.task(2)))
        await asyncio.sleep(0)

        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting

        gate.set()
        assert await running == 0
        assert await behind == 2
        assert tracker.started == [0, 2]
        assert queue.active_count == 0


class TestCancellationToken:
    async def test_starts_uncancelled(self) -> None:
        token = CancellationToken()
        assert token.cancelled is False

    async def test_sleep_returns_false_when_not_cancelled(self) -> None:
        token = CancellationToken()
        assert await token.sleep(0) is False

    async def test_sleep_returns_true_when_already_cancelled(self) -> None:
        token = CancellationToken()
        token.cancel()
        assert await token.sleep(60) is True

    async def test_cancel_interrupts_sleep(self) -> None:
        token = CancellationToken()
        sleeper = asyncio.ensure_future(token.sleep(60))
        await asyncio.sleep(0)
        token.cancel()
        assert await asyncio.wait_for(sleeper, timeout=1) is True

    async def test_wait_returns_after_cancel(self) -> None:
        token = CancellationToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)
