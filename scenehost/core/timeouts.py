from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong refs for tasks nobody awaits any more; the loop only keeps weak ones.
_ORPHANS: set[asyncio.Future[object]] = set()


def _reap(fut: asyncio.Future[object]) -> None:
    _ORPHANS.discard(fut)
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.debug("orphaned operation failed late: %r", exc)


def orphan(fut: asyncio.Future[T]) -> None:
    """Let `fut` keep running with nobody waiting on it; its outcome is discarded."""

    if fut.done():
        _reap(fut)  # type: ignore[arg-type]
        return
    _ORPHANS.add(fut)  # type: ignore[arg-type]
    fut.add_done_callback(_reap)  # type: ignore[arg-type]


def timeout_race(seconds: float) -> Callable[[Awaitable[T]], Awaitable[T | None]]:
    """Return a wrapper that races awaitables against one shared deadline.

    The deadline starts now. Each wrapped awaitable resolves to its own result if it
    finishes first, else to None once the deadline passes. The underlying work is
    never cancelled.
    """

    loop = asyncio.get_running_loop()
    deadline = loop.time() + seconds

    async def race(aw: Awaitable[T]) -> T | None:
        fut = asyncio.ensure_future(aw)
        remaining = max(deadline - loop.time(), 0.0)
        if not fut.done():
            done, _ = await asyncio.wait({fut}, timeout=remaining)
            if not done:
                orphan(fut)
                return None
        return fut.result()

    return race
