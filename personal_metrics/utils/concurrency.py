"""Concurrency primitives shared across sync jobs."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

__all__ = ["bounded_map", "split_results"]

T = TypeVar("T")
R = TypeVar("R")


async def bounded_map(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    concurrency: int,
    delay_ms: int = 0,
    stop_on_error: bool = True,
) -> list[R | BaseException]:
    """Apply ``fn`` to every item with at most ``concurrency`` calls in flight.

    Results keep the input order. Every dispatch after the first waits
    ``delay_ms`` once it holds a slot, so with ``concurrency=1`` consecutive
    calls start at least ``delay_ms`` apart. With ``stop_on_error`` disabled,
    failures are returned in place of results instead of being raised.
    """

    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, int(concurrency)))
    delay_seconds = max(0, int(delay_ms)) / 1000.0

    async def _run(index: int, item: T) -> R:
        async with semaphore:
            if index > 0 and delay_seconds > 0:
                await asyncio.sleep(delay_seconds)
            return await fn(item)

    tasks = [asyncio.create_task(_run(index, item)) for index, item in enumerate(items)]
    if not stop_on_error:
        return list(await asyncio.gather(*tasks, return_exceptions=True))

    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def split_results(results: Sequence[R | BaseException]) -> tuple[list[R], list[BaseException]]:
    """Partition :func:`bounded_map` output into successes and failures."""

    successes: list[R] = []
    failures: list[BaseException] = []
    for result in results:
        if isinstance(result, BaseException):
            failures.append(result)
        else:
            successes.append(result)
    return successes, failures
