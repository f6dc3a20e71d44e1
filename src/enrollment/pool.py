"""Bounded concurrency for independent fetch/hydrate tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 10


async def map_with_concurrency(
    items: Sequence[T],
    mapper: Callable[[T], Awaitable[R]],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[R]:
    """
    Run mapper over items with at most `concurrency` calls in flight.

    Results keep the input order. The mapper owns its own error handling;
    an exception escaping it cancels the batch.
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _run(item: T) -> R:
        async with semaphore:
            return await mapper(item)

    return list(await asyncio.gather(*(_run(item) for item in items)))
