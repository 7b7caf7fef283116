"""
Retry Executor

Backoff/retry strategies built on tenacity:

- **exponential**: retries with ``min_timeout * factor ** (attempt - 1)`` capped at
  ``max_timeout``; every failed attempt is logged.
- **fixed**: constant delay between attempts.
- **with_strategy**: a ``RetryPolicy`` decides per error and attempt whether to
  retry and how long to wait.

Two policies are predefined:

- ``integration_policy()`` for upstream API calls: never retries not-found,
  unauthorized or unresolved-host errors (or an open circuit), always retries
  timeouts, connection aborts, 5xx and 429, and otherwise allows up to three
  attempts. Delay is ``1s * 2^(attempt-1) + jitter`` capped at 30s.
- ``critical_policy()`` for stock-critical writes: shorter initial delay, gentler
  growth and more attempts.

Architectural Decision: tenacity AsyncRetrying with an injectable sleep
- Same retry engine as the rest of the stack
- Tests pass a no-op sleep to run backoff sequences instantly
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_exponential_jitter,
    wait_fixed,
)

from src.core.config.constants import (
    CRITICAL_BASE_DELAY,
    CRITICAL_FACTOR,
    CRITICAL_MAX_DELAY,
    CRITICAL_RETRIES,
    INTEGRATION_DEFAULT_ATTEMPTS,
    INTEGRATION_MAX_ATTEMPTS,
    MAX_RETRIES,
    RETRY_BASE_DELAY,
    RETRY_FACTOR,
    RETRY_MAX_DELAY,
    Stage,
)
from src.core.exceptions import (
    CircuitBreakerOpenError,
    IntegrationError,
    UpstreamHostNotFoundError,
    UpstreamNotFoundError,
    UpstreamUnauthorizedError,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

Operation = Callable[[], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[None]]

_NON_RETRYABLE = (
    CircuitBreakerOpenError,
    UpstreamNotFoundError,
    UpstreamUnauthorizedError,
    UpstreamHostNotFoundError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Predicate-driven retry policy."""

    name: str
    max_attempts: int
    should_retry: Callable[[BaseException, int], bool]
    delay: Callable[[int], float]


def integration_should_retry(error: BaseException, attempt: int) -> bool:
    """Decide whether an upstream call failure is worth another attempt."""
    if isinstance(error, _NON_RETRYABLE):
        return False
    if isinstance(error, IntegrationError) and error.retryable:
        return True
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True
    return attempt < INTEGRATION_DEFAULT_ATTEMPTS


def integration_delay(attempt: int) -> float:
    """Exponential delay with up to one second of jitter, capped."""
    return min(RETRY_BASE_DELAY * 2 ** (attempt - 1) + random.random(), RETRY_MAX_DELAY)


def integration_policy(max_attempts: int = INTEGRATION_MAX_ATTEMPTS) -> RetryPolicy:
    return RetryPolicy(
        name="integration",
        max_attempts=max_attempts,
        should_retry=integration_should_retry,
        delay=integration_delay,
    )


def critical_policy() -> RetryPolicy:
    """Aggressive policy for stock-critical writes."""

    def delay(attempt: int) -> float:
        return min(CRITICAL_BASE_DELAY * CRITICAL_FACTOR ** (attempt - 1), CRITICAL_MAX_DELAY)

    return RetryPolicy(
        name="critical",
        max_attempts=CRITICAL_RETRIES + 1,
        should_retry=lambda error, attempt: not isinstance(error, _NON_RETRYABLE),
        delay=delay,
    )


def _log_attempt(strategy: str, operation_name: str):
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying failed operation",
            stage=Stage.RETRY.value,
            strategy=strategy,
            operation=operation_name,
            attempt=retry_state.attempt_number,
            next_delay=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(error),
            error_type=type(error).__name__ if error else None,
        )

    return before_sleep


class RetryExecutor:
    """
    Runs zero-argument coroutine factories under a retry strategy.

    Args:
        sleep: Awaitable sleep used between attempts (``asyncio.sleep`` by default)
    """

    def __init__(self, sleep: SleepFn | None = None):
        self._sleep = sleep or asyncio.sleep

    async def exponential(
        self,
        operation: Operation,
        retries: int = MAX_RETRIES,
        min_timeout: float = RETRY_BASE_DELAY,
        max_timeout: float = RETRY_MAX_DELAY,
        factor: float = RETRY_FACTOR,
        name: str = "operation",
    ) -> Any:
        """Retry up to ``retries`` times with exponential backoff."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=min_timeout, exp_base=factor, max=max_timeout),
            before_sleep=_log_attempt("exponential", name),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(operation)

    async def fixed(
        self,
        operation: Operation,
        retries: int = MAX_RETRIES,
        delay: float = RETRY_BASE_DELAY,
        name: str = "operation",
    ) -> Any:
        """Retry up to ``retries`` times with a constant delay."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_fixed(delay),
            before_sleep=_log_attempt("fixed", name),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(operation)

    async def with_strategy(
        self, operation: Operation, policy: RetryPolicy, name: str = "operation"
    ) -> Any:
        """Retry while ``policy.should_retry`` allows, waiting ``policy.delay(attempt)``."""

        def should_retry(retry_state: RetryCallState) -> bool:
            if retry_state.outcome is None or not retry_state.outcome.failed:
                return False
            return policy.should_retry(retry_state.outcome.exception(), retry_state.attempt_number)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=lambda retry_state: policy.delay(retry_state.attempt_number),
            retry=should_retry,
            before_sleep=_log_attempt(policy.name, name),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(operation)


def create_retry_decorator(
    max_attempts: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    retry_exceptions: tuple = (TimeoutError, ConnectionError),
):
    """Decorator form for infrastructure calls that only retry transport errors."""
    std_logger = logging.getLogger(__name__)  # Tenacity needs std lib logger

    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=base_delay, max=max_delay),
        retry=retry_if_exception_type(retry_exceptions),
        before_sleep=before_sleep_log(std_logger, logging.WARNING),
        reraise=True,
    )
