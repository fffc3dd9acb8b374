"""Detached background task runner.

Work scheduled here outlives the request that spawned it. The runner keeps a
strong reference to every pending task (asyncio only holds weak ones) and logs
failures instead of letting them surface anywhere.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

logger = structlog.get_logger()


class BackgroundTaskRunner:
    """Run coroutines as fire-and-forget tasks on the current event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: str,
        **log_context: Any,
    ) -> asyncio.Task[Any]:
        """Schedule ``coro`` detached from the caller."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)

        def _on_done(finished: asyncio.Task[Any]) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                logger.warning("Background task cancelled", task=name, **log_context)
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(
                    "Background task failed",
                    task=name,
                    error=repr(exc),
                    **log_context,
                )

        task.add_done_callback(_on_done)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for all pending tasks, including ones spawned while waiting."""
        while True:
            pending = {task for task in self._tasks if not task.done()}
            if not pending:
                return
            await asyncio.wait(pending, timeout=timeout)
            if timeout is not None:
                return

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Give pending tasks a grace period, then cancel the rest."""
        pending = {task for task in self._tasks if not task.done()}
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
