"""Run a batch of requests concurrently and let every one of them settle.

A plain anyio task group cancels the siblings of a failed task. For gateway
requests that is wrong: a cancelled request has usually been written already,
so the gateway acts on it while the local side forgets the transaction.
"""

from __future__ import annotations

import sys
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import anyio

if sys.version_info < (3, 11):  # pragma: no cover
    from exceptiongroup import ExceptionGroup


async def settle_all(calls: Iterable[Callable[[], Awaitable[Any]]], description: str = "requests failed") -> None:
    """Await every call concurrently, then raise what failed.

    Raises:
        The failure itself if exactly one call failed, or an ``ExceptionGroup``
        with one entry per failed call (in completion order) otherwise.
        Cancellation of the caller still propagates immediately.
    """
    errors: list[Exception] = []

    async def settle(call: Callable[[], Awaitable[Any]]) -> None:
        try:
            await call()
        except Exception as exc:
            errors.append(exc)

    async with anyio.create_task_group() as tg:
        for call in calls:
            tg.start_soon(settle, call)

    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup(description, errors)
