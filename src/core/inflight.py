"""In-flight request de-duplication.

When several coroutines ask for the same key at once, only the first one
starts the work; the rest join it and all of them observe the same result
or the same exception.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, TypeVar

logger = logging.getLogger("wanikani.inflight")

T = TypeVar("T")


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # Mark the outcome as seen even when every joiner was cancelled
    if not task.cancelled():
        task.exception()


class InflightRegistry:
    """Map of key -> running task, shared by every caller of one client.

    Usage:
        registry = InflightRegistry()
        user = await registry.acquire_or_join(
            "wanikani-_user-abcd1234",
            lambda: transport.execute(...),
        )

    All mutations happen on the event loop thread between awaits, so the
    check-then-insert in acquire_or_join cannot interleave with another
    caller's.
    """

    def __init__(self) -> None:
        self._inflight: Dict[str, "asyncio.Task[Any]"] = {}

    async def acquire_or_join(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is not None:
            logger.debug(f"Joining in-flight request for {key}")
        else:
            logger.debug(f"Starting request for {key}")
            task = asyncio.ensure_future(self._run(key, factory))
            task.add_done_callback(_retrieve_exception)
            self._inflight[key] = task

        # Shield so one caller's cancellation does not cancel everyone's fetch
        return await asyncio.shield(task)

    async def _run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            # Drop the key before the outcome reaches any waiter
            self._inflight.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    @property
    def active_keys(self) -> List[str]:
        return list(self._inflight)
