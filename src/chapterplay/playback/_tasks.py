"""Tracked fire-and-forget tasks for the playback components."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


def _task_exception_handler(task: asyncio.Task) -> None:
    """Log exceptions from fire-and-forget tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Unhandled exception in background task %s: %r", task.get_name(), exc)


class BackgroundTasks:
    """Keep references to background tasks so they are not collected early."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        _task_exception_handler(task)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def close(self) -> None:
        """Cancel every pending task and wait for them to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError, Exception):  # already logged by _on_task_done
                await task

    def __len__(self) -> int:
        return len(self._tasks)
