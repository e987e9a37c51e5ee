"""
Best-effort progress reporting for long-running discovery.

Callbacks may be plain functions or coroutine functions. A coroutine result is
scheduled as a background task and never awaited inline; any failure, sync or
async, is logged and discarded.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Set, Union

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], Union[None, Awaitable[Any]]]


class ProgressReporter:
    """Wraps an optional progress callback so reporting can never abort a run."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._pending: Set[asyncio.Task] = set()

    def report(self, percent: int, message: str) -> None:
        if self._callback is None:
            return
        try:
            result = self._callback(percent, message)
        except Exception as e:
            logger.warning(f"Progress callback failed at {percent}% ({message}): {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Async progress update failed: {exc}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Let outstanding updates settle. Their errors are already logged."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
