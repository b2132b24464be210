"""
Single Flight - one in-flight operation per key
===============================================
Concurrent callers asking for the same key share a single task and all receive
its result (or its exception). The slot is cleared when the task finishes, so
the next call after that starts a fresh run.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, TypeVar

T = TypeVar("T")


class SingleFlight:

    def __init__(self):
        self._inflight: Dict[str, asyncio.Task] = {}
        self.runs_started = 0

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._execute(key, factory))
            task.add_done_callback(_consume_result)
            self._inflight[key] = task
            self.runs_started += 1

        # A cancelled caller must not cancel the shared run for everyone else
        return await asyncio.shield(task)

    async def _execute(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]


def _consume_result(task: "asyncio.Task[Any]") -> None:
    # Marks the exception as retrieved when every caller was cancelled
    if not task.cancelled():
        task.exception()
