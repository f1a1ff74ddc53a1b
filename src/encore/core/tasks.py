"""Best-effort background tasks.

Some work after a committed write (appending to the notification history
stream, outbound mail) must not delay or fail the request. Such work is run
as a detached task whose failure is logged and never propagated.

Usage:
    spawn_background(append_history(payload), name="notification-history")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)

# Strong references so pending tasks are not garbage collected mid-flight
_background_tasks: set[asyncio.Task[Any]] = set()


def spawn_background(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
    """Schedule a coroutine as a detached, best-effort task."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.debug(f"Background task {task.get_name()} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            f"Background task {task.get_name()} failed: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def pending_background_count() -> int:
    return len(_background_tasks)


async def drain_background(timeout: float = 5.0) -> None:
    """Wait for outstanding background tasks, cancelling any that overrun."""
    if not _background_tasks:
        return
    tasks = list(_background_tasks)
    _done, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning(f"Cancelled {len(pending)} background tasks at shutdown")
