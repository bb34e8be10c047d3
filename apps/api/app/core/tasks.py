"""
Supervised detached tasks.

Work spawned here outlives the request that triggered it (batch dispatch, chained
sketch generation, notifications). Each task gets its own error boundary: a crash
is logged and never propagates to the caller.
"""
from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional, Set

from app.core.logging import emit


class TaskSupervisor:
    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str, request_id: Optional[str] = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, request_id))
        return task

    def _on_done(self, task: asyncio.Task, request_id: Optional[str]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            emit("warning", "task.cancelled", task.get_name(), request_id, __name__)
            return
        exc = task.exception()
        if exc is not None:
            emit(
                "error",
                "task.crashed",
                f"{task.get_name()}: {exc}",
                request_id,
                __name__,
                type=type(exc).__name__,
            )

    async def drain(self) -> None:
        # tasks may spawn follow-ups (portrait -> sketch), so loop until quiet
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for t in list(self._tasks):
            t.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
