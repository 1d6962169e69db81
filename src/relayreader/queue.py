"""Admission queue and cancellation token.

The admission queue is the only explicit concurrency control in the data
layer: it caps how many network operations are outstanding at once. Excess
submissions wait in arrival order; nothing is ever rejected, so callers that
need a bound on waiting time must wrap the returned awaitable in their own
timeout.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import suppress
from typing import TYPE_CHECKING, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = structlog.get_logger()

T = TypeVar("T")


class AdmissionQueue:
    """FIFO admission control for at most ``max_concurrent`` running tasks."""

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._active_count = 0
        # Each waiter is a future resolved when a slot is handed to it.
        self._waiting: deque[asyncio.Future[None]] = deque()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        return self._active_count

    @property
    def waiting_count(self) -> int:
        return sum(1 for fut in self._waiting if not fut.done())

    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task()`` once a slot is free and return its result.

        Exceptions raised by the task propagate to the caller; the slot is
        released either way.
        """
        await self._acquire()
        try:
            return await task()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._active_count < self._max_concurrent and not self._waiting:
            self._active_count += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiting.append(waiter)
        log.debug(
            "admission_queued",
            active=self._active_count,
            waiting=len(self._waiting),
        )
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.cancelled():
                # Still queued: just drop out of line.
                with suppress(ValueError):
                    self._waiting.remove(waiter)
            else:
                # A slot was handed over just before cancellation; pass it on.
                self._release()
            raise

    def _release(self) -> None:
        while self._waiting:
            waiter = self._waiting.popleft()
            if not waiter.done():
                # Slot transfers directly to the next waiter; count is unchanged.
                waiter.set_result(None)
                return
        self._active_count -= 1


class CancellationToken:
    """Shared signal for abandoning a family of in-flight requests.

    One token may be handed to many fetches (e.g. every page load started for
    a view); cancelling it stops all of them at their next checkpoint.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds. Returns True if cancelled meanwhile."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True
