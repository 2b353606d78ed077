# src/throttle/courtesy.py — v1
"""Jittered courtesy delay bounding the request rate to external services."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass


@dataclass(frozen=True)
class CourtesyDelay:
    """Uniform random delay within ``[min_ms, max_ms]``."""

    min_ms: int = 200
    max_ms: int = 700

    def __post_init__(self) -> None:
        if self.min_ms < 0 or self.max_ms < self.min_ms:
            raise ValueError(
                f"Invalid delay window: min={self.min_ms}ms, max={self.max_ms}ms"
            )

    def draw(self) -> float:
        """Return one delay in seconds."""
        return random.uniform(self.min_ms, self.max_ms) / 1000.0  # noqa: S311

    async def wait(self) -> float:
        """Sleep for a random delay and return it (seconds)."""
        delay = self.draw()
        if delay > 0:
            await asyncio.sleep(delay)
        return delay


NO_DELAY = CourtesyDelay(0, 0)
