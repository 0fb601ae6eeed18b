"""
Fire-and-forget dispatch on the running event loop.

Callers never await delivery. Failures are logged under the caller's event
name and dropped: no retry, nothing raised back.
"""

import asyncio
from typing import Any, Coroutine

import structlog

logger = structlog.get_logger()


class BackgroundTasks:
    """Holds strong references to in-flight tasks until they finish."""

    def __init__(self):
        self._pending: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._pending)

    def spawn(self, coro: Coroutine[Any, Any, Any], failure_event: str, **context) -> bool:
        """Schedule coro; returns False (and closes it) when no loop is running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("background_dispatch_no_loop", failed_event=failure_event, **context)
            return False

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finished(t, failure_event, context))
        return True

    def _finished(self, task: asyncio.Task, failure_event: str, context: dict) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(failure_event, error=str(exc), error_type=type(exc).__name__, **context)

    async def drain(self) -> None:
        """Wait for everything in flight (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
