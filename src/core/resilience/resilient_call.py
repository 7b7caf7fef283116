"""
Resilient Call Composition

Wraps a plain async call function in the resilience stack, outermost first:

    rate limiter -> retry executor -> circuit breaker -> transport

Each layer is an independent object so it can be tested (and swapped) alone.
An open circuit raises ``CircuitBreakerOpenError`` which the retry policies
never retry, so a degraded upstream costs one breaker check, not a retry budget.
"""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from src.core.config.constants import Stage
from src.core.logging.logger import get_logger
from src.core.resilience.circuit_breaker import CircuitBreaker
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.core.resilience.retry import RetryExecutor, RetryPolicy, integration_policy

logger = get_logger(__name__)


class ResilientCall:
    """
    Main entry point for making upstream calls with resilience.

    Usage:
        invoker = ResilientCall(breaker, rate_limiter=limiter)
        data = await invoker.call(transport.get, "/api/v1/stock")
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        retry_executor: RetryExecutor | None = None,
        policy: RetryPolicy | None = None,
    ):
        self.breaker = breaker
        self.rate_limiter = rate_limiter
        self.retry_executor = retry_executor or RetryExecutor()
        self.policy = policy or integration_policy()

    async def call(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        policy: RetryPolicy | None = None,
        operation: str | None = None,
        **kwargs,
    ) -> Any:
        """Run ``func(*args, **kwargs)`` under the full stack."""
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        name = operation or getattr(func, "__name__", "call")
        start_time = time.perf_counter()

        async def attempt():
            return await self.breaker.execute(func, *args, **kwargs)

        try:
            result = await self.retry_executor.with_strategy(
                attempt, policy or self.policy, name=f"{self.breaker.name}.{name}"
            )
        except Exception as e:
            logger.error(
                "Resilient call failed",
                stage=Stage.INTEGRATION.value,
                integration=self.breaker.name,
                operation=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.debug(
            "Resilient call succeeded",
            stage=Stage.INTEGRATION.value,
            integration=self.breaker.name,
            operation=name,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return result


def with_resilience(invoker: ResilientCall, policy: RetryPolicy | None = None):
    """Decorator that routes every call of the wrapped coroutine through ``invoker``."""

    def decorator(func: Callable[..., Awaitable[Any]]):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await invoker.call(func, *args, policy=policy, **kwargs)

        return wrapper

    return decorator
