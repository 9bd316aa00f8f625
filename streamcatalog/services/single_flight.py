"""Coalesce concurrent calls for the same key into one running task."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """At most one in-flight task per key.

    The lock guards only the task map; the work itself runs outside it, so a
    second caller simply attaches to the existing task.  Callers await through
    :func:`asyncio.shield`, so a caller that gives up does not cancel the
    shared work for the others.
    """

    def __init__(self):
        self._tasks: dict[Hashable, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    def in_flight(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def run(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            task = self._tasks.get(key)
            if task is None or task.done():
                task = asyncio.create_task(self._execute(key, fn))
                task.add_done_callback(_consume_exception)
                self._tasks[key] = task
            else:
                logger.debug(f"Joining in-flight task for {key!r}")
        return await asyncio.shield(task)

    async def _execute(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        finally:
            # Only drop our own entry; a later task may already own the key
            if self._tasks.get(key) is asyncio.current_task():
                self._tasks.pop(key, None)


def _consume_exception(task: asyncio.Task) -> None:
    # Result delivered to awaiting callers; avoids "exception was never retrieved"
    if not task.cancelled():
        task.exception()
