"""
Sliding Window Rate Limiter

Per-integration call throttle. Counts requests since the window started; once
the per-window quota is exceeded the caller sleeps until the window resets and
then proceeds. This is a blocking throttle, it never rejects.

Architectural Decision: one limiter per integration client
- Quotas are independent (ERP 100/min, ERP stock 200/min, POS 120/min)
- An asyncio.Lock serializes waiters so a burst drains in order
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from src.core.config.constants import RATE_LIMIT_WINDOW_SECONDS, Stage
from src.core.exceptions import RateLimitError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Args:
        name: Integration name for logs
        max_requests: Quota per window
        window_seconds: Window length
        clock: Monotonic time source
        sleep: Awaitable sleep
        on_wait: Called with the integration name each time a caller has to wait
    """

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        on_wait: Callable[[str], None] | None = None,
    ):
        if max_requests <= 0:
            raise RateLimitError(
                "Rate limiter quota must be positive",
                details={"integration": name, "max_requests": max_requests},
            )
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._on_wait = on_wait
        self._count = 0
        self._window_start: float | None = None
        self._lock = asyncio.Lock()
        self.total_waits = 0

    @property
    def count(self) -> int:
        return self._count

    async def acquire(self) -> float:
        """
        Count one request, sleeping first if the quota is exhausted.

        Returns:
            Seconds spent waiting (0.0 when under quota)
        """
        async with self._lock:
            now = self._clock()
            if self._window_start is None or now - self._window_start >= self.window_seconds:
                self._window_start = now
                self._count = 0

            self._count += 1
            if self._count <= self.max_requests:
                return 0.0

            wait_time = max(self.window_seconds - (now - self._window_start), 0.0)
            logger.warning(
                "Rate limit reached, waiting for window reset",
                stage=Stage.RATE_LIMIT.value,
                integration=self.name,
                quota=self.max_requests,
                wait_seconds=round(wait_time, 3),
            )
            self.total_waits += 1
            if self._on_wait is not None:
                self._on_wait(self.name)
            await self._sleep(wait_time)

            self._count = 1
            self._window_start = self._clock()
            return wait_time

    def limit(self, func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        """Decorate an async callable so each invocation is throttled."""

        @wraps(func)
        async def wrapper(*args, **kwargs):
            await self.acquire()
            return await func(*args, **kwargs)

        return wrapper

    def get_stats(self) -> dict[str, Any]:
        return {
            "integration": self.name,
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "current_count": self._count,
            "total_waits": self.total_waits,
        }
