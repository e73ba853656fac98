"""
Fire-and-forget task spawning for cache refreshes and prefetches.

Tasks are never awaited by the request path. Strong references are held until
the task finishes so the event loop cannot garbage-collect it mid-flight, and
any exception is logged from the done-callback instead of surfacing as an
unretrieved task exception.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)

_pending: set[asyncio.Task] = set()


def spawn_background(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    _pending.add(task)

    def _on_done(t: asyncio.Task) -> None:
        _pending.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc:
            logger.error("Background task %s failed: %s", t.get_name(), exc, exc_info=exc)

    task.add_done_callback(_on_done)
    return task


def pending_tasks() -> list[asyncio.Task]:
    """Snapshot of in-flight background tasks (tests drain these)."""
    return list(_pending)
