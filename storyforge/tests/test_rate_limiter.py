"""Tests for the async token bucket."""

import pytest

from storyforge.common.rate_limiter import RateLimiter


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            RateLimiter(0)
        with pytest.raises(ValueError):
            RateLimiter(1, burst=0)

    @pytest.mark.asyncio
    async def test_first_acquire_does_not_wait(self):
        fake = FakeTime()
        limiter = RateLimiter.from_interval(0.3, clock=fake.clock, sleep=fake.sleep)
        assert await limiter.acquire() == 0.0
        assert fake.sleeps == []

    @pytest.mark.asyncio
    async def test_consecutive_acquires_are_paced(self):
        fake = FakeTime()
        limiter = RateLimiter.from_interval(0.3, clock=fake.clock, sleep=fake.sleep)

        for _ in range(3):
            await limiter.acquire()

        assert len(fake.sleeps) == 2
        assert all(s == pytest.approx(0.3) for s in fake.sleeps)

    @pytest.mark.asyncio
    async def test_idle_time_refills_bucket(self):
        fake = FakeTime()
        limiter = RateLimiter.from_interval(2.0, clock=fake.clock, sleep=fake.sleep)

        await limiter.acquire()
        fake.now += 5.0
        assert await limiter.acquire() == 0.0
        assert fake.sleeps == []

    @pytest.mark.asyncio
    async def test_burst_allows_immediate_calls(self):
        fake = FakeTime()
        limiter = RateLimiter(1.0, burst=3, clock=fake.clock, sleep=fake.sleep)

        for _ in range(3):
            await limiter.acquire()
        assert fake.sleeps == []
        await limiter.acquire()
        assert fake.sleeps == [pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_sleep_that_does_not_advance_clock(self):
        sleeps = []

        async def no_op_sleep(seconds):
            sleeps.append(seconds)

        limiter = RateLimiter(1.0, clock=lambda: 0.0, sleep=no_op_sleep)
        await limiter.acquire()
        await limiter.acquire()
        assert sleeps == [1.0]
        assert limiter.tokens == 0.0
