"""
Concurrency utilities - bounded worker pool for model calls, submissions and e-mails.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence


@dataclass
class TaskResult:
    """Outcome of one scheduled task: either a value or the exception it raised."""
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None


async def run_with_concurrency(
    tasks: Sequence[Callable[[], Awaitable[Any]]],
    limit: int,
) -> List[TaskResult]:
    """
    Run zero-argument coroutine factories with at most `limit` in flight.

    Tasks start in input order, each exactly once, and results come back in
    input order. A failing task is recorded and never cancels its siblings.
    """
    if limit < 1:
        raise ValueError(f"Concurrency limit must be >= 1, got {limit}")

    results: List[Optional[TaskResult]] = [None] * len(tasks)
    next_index = 0

    async def worker():
        nonlocal next_index
        while next_index < len(tasks):
            index = next_index
            next_index += 1
            try:
                results[index] = TaskResult(ok=True, value=await tasks[index]())
            except Exception as e:
                results[index] = TaskResult(ok=False, error=e)

    await asyncio.gather(*(worker() for _ in range(min(limit, len(tasks)))))
    return results
