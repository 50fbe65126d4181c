"""
Bounded concurrency over a collection of async operations.

Used by the Match queue to keep at most a few LLM requests in flight per
batch, which is what the upstream rate limits tolerate.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    operation: Callable[[T, int], Awaitable[R]],
    limit: int = settings.MATCH_CONCURRENCY,
) -> List[Optional[R]]:
    """
    Run `operation(item, index)` for every item with at most `limit` in flight.

    Every item is attempted exactly once and the call returns only after all
    of them have settled. Completion order is unspecified. An exception that
    escapes `operation` is logged and recorded as None for that item; it does
    not cancel or delay the remaining items. Operations that want a fallback
    value should catch their own errors.

    Args:
        items: Items to process
        operation: Coroutine function taking (item, index)
        limit: Maximum operations in flight (>= 1)

    Returns:
        Results in input order (None where the operation raised)
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    results: List[Optional[R]] = [None] * len(items)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            index = next_index
            next_index += 1
            try:
                results[index] = await operation(items[index], index)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Batch item {index} failed: {e}", exc_info=True)

    workers = [asyncio.create_task(worker()) for _ in range(min(limit, len(items)))]
    if workers:
        await asyncio.gather(*workers)
    return results
