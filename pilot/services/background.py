"""
Best-effort background writes.

History and token-usage rows must never fail a request. They are scheduled
here as tracked tasks: failures are logged, never raised, and `drain()` lets
shutdown (and tests) wait for what is still in flight.
"""

import asyncio
import logging
from typing import Awaitable

logger = logging.getLogger(__name__)

_pending: set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        logger.warning("Background write cancelled: %s", task.get_name())
        return
    error = task.exception()
    if error is not None:
        logger.error("Background write failed: %s: %s", task.get_name(), error)


def fire_and_forget(coro: Awaitable, label: str) -> asyncio.Task:
    """Schedule a non-critical write. Returns the task for callers that want to await it."""
    task = asyncio.ensure_future(coro)
    task.set_name(label)
    _pending.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_count() -> int:
    return len(_pending)


async def drain() -> None:
    """Wait for all outstanding writes."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
