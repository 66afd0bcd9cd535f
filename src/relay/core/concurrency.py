"""Settle-all fan-out helper.

Runs independent coroutines concurrently and waits for every one of them.
A failure in one task never cancels or hides the others: each exception is
handed to a converter that turns it into a regular result, so callers
always get exactly one result per task, in task order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")


async def settle_all(
    tasks: Sequence[Awaitable[T]],
    on_error: Callable[[int, BaseException], T],
) -> list[T]:
    """Await all tasks concurrently, converting failures into results.

    Args:
        tasks: Awaitables to run concurrently.
        on_error: Called with ``(index, exception)`` for each task that
            raised; its return value takes that task's slot.

    Returns:
        One result per task, in the same order as ``tasks``.
    """
    if not tasks:
        return []

    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    results: list[T] = []
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            results.append(on_error(index, outcome))
        else:
            results.append(outcome)
    return results
