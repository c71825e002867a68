from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger("pixelgate.background")


class BackgroundRunner:
    """
    Detached side effects for the request path.

    Submitted coroutines run as tracked tasks; the request never awaits them.
    Failures are logged here and go no further. `drain()` waits for whatever
    is still pending (shutdown, tests).
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def submit(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"task": task.get_name()},
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
