# src/throttle/retry.py — v1
"""Download retry policy with exponential backoff and optional jitter."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one call site.

    ``max_attempts`` counts the first try. The first retry waits
    ``base_delay_s``; each later one waits ``backoff_factor`` times longer.
    """

    max_attempts: int = 5
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0
    jitter: bool = False

    def delay_before(self, attempt: int) -> float:
        """Compute the delay preceding a given attempt (1-based).

        >>> [RetryPolicy().delay_before(n) for n in range(1, 6)]
        [0.0, 1.0, 2.0, 4.0, 8.0]
        """
        if attempt <= 1:
            return 0.0
        delay = self.base_delay_s * (self.backoff_factor ** (attempt - 2))
        if self.jitter:
            delay *= 0.5 + random.random()  # noqa: S311
        return delay

    async def wait_before(self, attempt: int) -> None:
        delay = self.delay_before(attempt)
        if delay > 0:
            await asyncio.sleep(delay)
