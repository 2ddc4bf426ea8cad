"""Bounded-concurrency execution of per-file transfers.

With concurrency=1, behavior is identical to a sequential for-loop.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_parallel(
    items: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
    *,
    concurrency: int = 1,
) -> list[R | Exception]:
    """Run worker(index, item) for each item with at most ``concurrency`` in flight.

    Args:
        items: Sequence of items to process. Each item is handed to exactly one worker call.
        worker: async (index, item) -> result. Index is 0-based.
        concurrency: Max in-flight workers. 1 = sequential.

    Returns:
        List of results in input order. Failed items are Exception instances;
        cancellation is never swallowed.
    """
    total = len(items)
    if total == 0:
        return []

    results: list[R | Exception] = [None] * total  # type: ignore[list-item]
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _run_one(index: int, item: T) -> None:
        async with semaphore:
            try:
                results[index] = await worker(index, item)
            except Exception as exc:
                logger.debug(f"Worker for item {index} failed: {exc}")
                results[index] = exc

    if concurrency <= 1:
        for i, item in enumerate(items):
            await _run_one(i, item)
    else:
        tasks = [asyncio.create_task(_run_one(i, item)) for i, item in enumerate(items)]
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    return results
