"""Bounded fan-out used by every per-repository batch operation.

Each item is tagged with its canonical index at dispatch time.  Workers run
under a ``CapacityLimiter`` and hand ``(index, result)`` pairs to the
coordinator through a memory object stream; workers never touch a shared
accumulator.  The coordinator stores results by index, so the returned list
is in input order no matter which task finished first.

Workers are expected to capture their own per-item failures in the result
they return.  An exception escaping a worker is a bug and cancels the batch.
"""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

import anyio
from anyio.abc import ObjectSendStream

T = TypeVar("T")
R = TypeVar("R")


async def fan_out(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    limit: int,
    on_result: Callable[[int, R], None] | None = None,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``limit`` in flight.

    ``on_result(index, result)`` is called by the coordinator as each result
    arrives, in completion order.
    """
    if limit <= 0:
        msg = "limit must be greater than 0"
        raise ValueError(msg)
    if not items:
        return []

    limiter = anyio.CapacityLimiter(limit)
    results: list[R | None] = [None] * len(items)
    send, receive = anyio.create_memory_object_stream[tuple[int, R]](math.inf)

    async def _run(index: int, item: T, out: ObjectSendStream[tuple[int, R]]) -> None:
        async with out:
            async with limiter:
                result = await worker(item)
            await out.send((index, result))

    async with anyio.create_task_group() as tg:
        async with send:
            for index, item in enumerate(items):
                tg.start_soon(_run, index, item, send.clone())
        async with receive:
            async for index, result in receive:
                results[index] = result
                if on_result is not None:
                    on_result(index, result)

    return results  # type: ignore[return-value]


class OrderedFlusher(Generic[R]):
    """Release results strictly in index order as soon as each prefix is complete.

    Used as an ``on_result`` callback: with results arriving out of order,
    ``emit`` is still called for index 0, 1, 2, ... in sequence, each exactly
    once, and each call receives one complete result.
    """

    def __init__(self, emit: Callable[[R], None]) -> None:
        self._emit = emit
        self._pending: dict[int, R] = {}
        self._next = 0

    def __call__(self, index: int, result: R) -> None:
        self._pending[index] = result
        while self._next in self._pending:
            self._emit(self._pending.pop(self._next))
            self._next += 1
