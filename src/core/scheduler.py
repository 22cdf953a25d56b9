"""Bounded-concurrency FIFO admission for outgoing API requests.

At most `max_concurrent` tasks run at once; the rest wait in a queue and
are started strictly in submission order as slots free up. Completion order
is whatever the network makes it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, TypeVar

logger = logging.getLogger("wanikani.scheduler")

T = TypeVar("T")


class RequestScheduler:
    def __init__(self, *, max_concurrent: int = 3) -> None:
        self._max_concurrent = max(1, int(max_concurrent))
        self._in_flight = 0
        self._waiters: Deque["asyncio.Future[None]"] = deque()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def queued(self) -> int:
        return len(self._waiters)

    async def enqueue(self, factory: Callable[[], Awaitable[T]]) -> T:
        await self._admit()
        try:
            return await factory()
        finally:
            self._release()

    async def _admit(self) -> None:
        if self._in_flight < self._max_concurrent and not self._waiters:
            self._in_flight += 1
            return

        waiter: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"Request queued (in flight: {self._in_flight}, queued: {len(self._waiters)})")
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # We were handed a slot just as we got cancelled: pass it on
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    # _release already popped and skipped it
                    pass
            raise

    def _release(self) -> None:
        # Hand the slot straight to the oldest waiter; the count stays the same
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._in_flight -= 1
