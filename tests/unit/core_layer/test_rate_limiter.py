"""
Unit Tests for Sliding Window Rate Limiter
"""

import pytest

from src.core.exceptions import RateLimitError
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from tests.test_fixtures.store_factory import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def waits():
    return []


@pytest.fixture
def limiter(clock, waits):
    async def sleep(seconds):
        waits.append(seconds)
        clock.advance(seconds)

    return SlidingWindowRateLimiter("erp", max_requests=3, window_seconds=60, clock=clock, sleep=sleep)


@pytest.mark.unit
class TestSlidingWindowRateLimiter:
    async def test_under_quota_never_waits(self, limiter, waits):
        for _ in range(3):
            assert await limiter.acquire() == 0.0
        assert waits == []

    async def test_over_quota_waits_for_window_reset(self, limiter, clock, waits):
        for _ in range(3):
            await limiter.acquire()
        clock.advance(20)

        waited = await limiter.acquire()

        assert waited == 40
        assert waits == [40]
        assert limiter.count == 1

    async def test_window_rolls_over(self, limiter, clock, waits):
        for _ in range(3):
            await limiter.acquire()
        clock.advance(61)

        assert await limiter.acquire() == 0.0
        assert waits == []

    async def test_on_wait_callback(self, clock):
        seen = []

        async def sleep(seconds):
            clock.advance(seconds)

        limiter = SlidingWindowRateLimiter(
            "retail-pos", 1, window_seconds=60, clock=clock, sleep=sleep, on_wait=seen.append
        )
        await limiter.acquire()
        await limiter.acquire()

        assert seen == ["retail-pos"]
        assert limiter.get_stats()["total_waits"] == 1

    async def test_limit_decorator(self, limiter):
        @limiter.limit
        async def fetch(value):
            return value * 2

        assert await fetch(21) == 42
        assert limiter.count == 1

    def test_quota_must_be_positive(self):
        with pytest.raises(RateLimitError):
            SlidingWindowRateLimiter("erp", 0)
