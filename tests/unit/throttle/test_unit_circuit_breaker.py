# tests/unit/throttle/test_unit_circuit_breaker.py — v1
"""Tests for throttle/circuit_breaker.py — consecutive-429 pause."""

from __future__ import annotations

import asyncio

import pytest

from rcpsync.throttle.circuit_breaker import RateLimitBreaker


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def _breaker(clock: FakeClock, **kw) -> RateLimitBreaker:
    return RateLimitBreaker(sleep=clock.sleep, clock=clock, **kw)


class TestRateLimitBreaker:
    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            RateLimitBreaker(threshold=0)

    @pytest.mark.asyncio
    async def test_below_threshold_no_pause(self):
        clock = FakeClock()
        breaker = _breaker(clock, threshold=15)
        for _ in range(14):
            assert await breaker.record_rate_limited() is False
        assert breaker.consecutive == 14
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_threshold_triggers_single_pause(self):
        clock = FakeClock()
        breaker = _breaker(clock, threshold=15, pause_s=300)
        results = [await breaker.record_rate_limited() for _ in range(15)]
        assert results[-1] is True
        assert clock.sleeps == [300]
        assert breaker.pauses_triggered == 1
        assert breaker.consecutive == 0
        assert breaker.paused is False

    @pytest.mark.asyncio
    async def test_success_resets_counter(self):
        clock = FakeClock()
        breaker = _breaker(clock, threshold=3)
        await breaker.record_rate_limited()
        await breaker.record_rate_limited()
        breaker.record_success()
        await breaker.record_rate_limited()
        assert breaker.consecutive == 1
        assert breaker.pauses_triggered == 0

    @pytest.mark.asyncio
    async def test_callers_wait_during_pause(self):
        release = asyncio.Event()

        async def held_sleep(seconds: float) -> None:
            if seconds == 300:
                await release.wait()
            else:
                await asyncio.sleep(0)

        breaker = RateLimitBreaker(threshold=1, pause_s=300, poll_s=1, sleep=held_sleep)
        holder = asyncio.create_task(breaker.record_rate_limited())
        await asyncio.sleep(0)
        assert breaker.paused is True

        waiter = asyncio.create_task(breaker.wait_if_paused())
        await asyncio.sleep(0)
        assert not waiter.done()

        release.set()
        assert await holder is True
        await asyncio.wait_for(waiter, timeout=1)
        assert breaker.pauses_triggered == 1

    @pytest.mark.asyncio
    async def test_waiter_gives_up_after_margin(self):
        clock = FakeClock()
        breaker = _breaker(clock, threshold=1, pause_s=10, poll_s=1, wait_margin_s=5)
        breaker.paused = True
        await breaker.wait_if_paused()
        assert clock.now > 15
        assert len(clock.sleeps) == 16

    @pytest.mark.asyncio
    async def test_pause_released_on_cancel(self):
        async def forever(seconds: float) -> None:
            await asyncio.Event().wait()

        breaker = RateLimitBreaker(threshold=1, sleep=forever)
        task = asyncio.create_task(breaker.record_rate_limited())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert breaker.paused is False
        assert breaker.consecutive == 0
