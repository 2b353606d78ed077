# src/throttle/limiter.py — v1
"""Bounded concurrency limiter and settle-all join.

Each pipeline stage owns one named limiter; a task waiting for a slot is
suspended until another finishes (FIFO admission via asyncio.Semaphore).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Settled(Generic[T]):
    """Outcome of one task joined with ``gather_settled``."""

    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BoundedLimiter:
    """Caps the number of in-flight coroutines run through it."""

    def __init__(self, name: str, concurrency: int = 5) -> None:
        if concurrency < 1:
            raise ValueError(f"Limiter '{name}' needs concurrency >= 1, got {concurrency}")
        self.name = name
        self.concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self._active = 0
        self.peak = 0

    @property
    def active(self) -> int:
        return self._active

    async def run(self, fn: Callable[..., Awaitable[R]], *args: Any, **kwargs: Any) -> R:
        """Run ``fn(*args, **kwargs)`` once a slot is free."""
        async with self._semaphore:
            self._active += 1
            self.peak = max(self.peak, self._active)
            try:
                return await fn(*args, **kwargs)
            finally:
                self._active -= 1

    async def map_settled(
        self, fn: Callable[[T], Awaitable[R]], items: Iterable[T]
    ) -> list[Settled[R]]:
        """Apply ``fn`` to every item under the limit; never raises for item errors."""
        return await gather_settled(*(self.run(fn, item) for item in items))


async def gather_settled(*aws: Awaitable[R]) -> list[Settled[R]]:
    """Await all awaitables; one failure does not cancel the others.

    Results keep the order of the arguments.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    settled: list[Settled[R]] = []
    for result in results:
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            settled.append(Settled(error=result))
        else:
            settled.append(Settled(value=result))
    return settled
