"""Shared concurrency primitives.

**map_with_concurrency** is a fixed-size worker pool pulling items from a
shared ``asyncio.Queue``.  This is the backpressure mechanism for the
knowledge-base embedding build: at most ``concurrency`` mapper calls are
in flight at once, and results come back in input order.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

_T = TypeVar("_T")
_R = TypeVar("_R")


async def map_with_concurrency(
    items: Sequence[_T],
    mapper: Callable[[_T, int], Awaitable[_R]],
    concurrency: int,
) -> list[_R]:
    """Apply ``mapper`` to every item using a bounded pool of workers.

    Parameters
    ----------
    items:
        Inputs to process.
    mapper:
        Async callable invoked as ``mapper(item, index)``.  Exceptions it
        raises propagate and stop the pool, so mappers that must tolerate
        failures should catch them and return a sentinel.
    concurrency:
        Number of workers.  Clamped to ``[1, len(items)]``.

    Returns
    -------
    list[_R]
        Mapped values in input order.
    """
    if not items:
        return []

    queue: asyncio.Queue[int] = asyncio.Queue()
    for index in range(len(items)):
        queue.put_nowait(index)

    results: list[_R | None] = [None] * len(items)

    async def _worker() -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await mapper(items[index], index)
            queue.task_done()

    worker_count = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(_worker() for _ in range(worker_count)))
    return results  # type: ignore[return-value]
