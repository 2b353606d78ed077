# src/throttle/circuit_breaker.py — v1
"""Process-wide pause triggered by sustained HTTP 429 responses.

One breaker instance is shared by every download task of a run. When the
count of consecutive 429 responses reaches the threshold, the first caller
to cross it holds the pause for ``pause_s`` seconds and then resets the
counter; callers that find the pause already held poll until it clears,
giving up after ``pause_s + wait_margin_s`` to avoid starvation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimitBreaker:
    """Consecutive-429 counter plus a non-reentrant pause flag."""

    def __init__(
        self,
        threshold: int = 15,
        pause_s: float = 300.0,
        poll_s: float = 1.0,
        wait_margin_s: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self.pause_s = pause_s
        self.poll_s = poll_s
        self.wait_margin_s = wait_margin_s
        self._sleep = sleep
        self._clock = clock
        self.consecutive = 0
        self.paused = False
        self.pauses_triggered = 0

    def record_success(self) -> None:
        """Any non-429 outcome resets the consecutive counter."""
        self.consecutive = 0

    async def record_rate_limited(self) -> bool:
        """Register one 429 response, pausing or waiting when required.

        Returns:
            True if this caller triggered the pause.
        """
        self.consecutive += 1
        logger.warning(
            "HTTP 429 received (%d/%d consecutive)", self.consecutive, self.threshold
        )

        if self.paused:
            await self._wait_for_pause()
            return False

        if self.consecutive >= self.threshold:
            self.paused = True
            self.pauses_triggered += 1
            try:
                logger.warning(
                    "Rate-limit threshold of %d reached, pausing all downloads for %.0fs",
                    self.threshold, self.pause_s,
                )
                await self._sleep(self.pause_s)
            finally:
                self.consecutive = 0
                self.paused = False
                logger.info("Rate-limit pause over, resuming downloads")
            return True

        return False

    async def wait_if_paused(self) -> None:
        """Block a new request while a pause is in progress."""
        if self.paused:
            await self._wait_for_pause()

    async def _wait_for_pause(self) -> None:
        logger.warning("Rate-limit pause in progress, waiting")
        started = self._clock()
        limit = self.pause_s + self.wait_margin_s
        while self.paused:
            await self._sleep(self.poll_s)
            if self._clock() - started > limit:
                logger.error("Waited more than %.0fs for the rate-limit pause, resuming", limit)
                break
