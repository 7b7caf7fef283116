"""
Unit Tests for Retry Executor

Tests the exponential, fixed and policy-driven strategies with an instant sleep.
"""

import pytest

from src.core.config.constants import CRITICAL_RETRIES, INTEGRATION_MAX_ATTEMPTS
from src.core.exceptions import (
    CircuitBreakerOpenError,
    UpstreamNotFoundError,
    UpstreamServerError,
    UpstreamTimeoutError,
    UpstreamUnauthorizedError,
)
from src.core.resilience.retry import (
    RetryExecutor,
    critical_policy,
    integration_delay,
    integration_policy,
    integration_should_retry,
)


class Flaky:
    """Fails ``failures`` times with ``error`` then returns ``result``."""

    def __init__(self, failures, error, result="ok"):
        self.failures = failures
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def executor(sleeps):
    async def record(seconds):
        sleeps.append(seconds)

    return RetryExecutor(sleep=record)


@pytest.mark.unit
class TestExponentialStrategy:
    async def test_succeeds_after_failures(self, executor, sleeps):
        operation = Flaky(2, ConnectionError("reset"))

        assert await executor.exponential(operation, retries=3, min_timeout=1, factor=2) == "ok"
        assert operation.calls == 3
        assert len(sleeps) == 2

    async def test_gives_up_after_retries(self, executor):
        operation = Flaky(10, ConnectionError("reset"))

        with pytest.raises(ConnectionError):
            await executor.exponential(operation, retries=3)

        assert operation.calls == 4

    async def test_delay_is_capped(self, executor, sleeps):
        operation = Flaky(5, ConnectionError("reset"))

        await executor.exponential(operation, retries=5, min_timeout=1, max_timeout=4, factor=2)

        assert max(sleeps) <= 4


@pytest.mark.unit
class TestFixedStrategy:
    async def test_constant_delay(self, executor, sleeps):
        operation = Flaky(3, TimeoutError())

        await executor.fixed(operation, retries=3, delay=0.5)

        assert sleeps == [0.5, 0.5, 0.5]


@pytest.mark.unit
class TestIntegrationPolicy:
    @pytest.mark.parametrize(
        "error",
        [
            UpstreamNotFoundError("missing"),
            UpstreamUnauthorizedError("bad key"),
            CircuitBreakerOpenError("open"),
        ],
    )
    async def test_non_retryable_errors_run_once(self, executor, error):
        operation = Flaky(1, error)

        with pytest.raises(type(error)):
            await executor.with_strategy(operation, integration_policy())

        assert operation.calls == 1

    async def test_server_errors_use_full_budget(self, executor):
        operation = Flaky(99, UpstreamServerError("503"))

        with pytest.raises(UpstreamServerError):
            await executor.with_strategy(operation, integration_policy())

        assert operation.calls == INTEGRATION_MAX_ATTEMPTS

    async def test_unclassified_errors_get_three_attempts(self, executor):
        operation = Flaky(99, ValueError("bad payload"))

        with pytest.raises(ValueError):
            await executor.with_strategy(operation, integration_policy())

        assert operation.calls == 3

    async def test_timeout_recovers(self, executor):
        operation = Flaky(2, UpstreamTimeoutError("slow"))

        assert await executor.with_strategy(operation, integration_policy()) == "ok"

    def test_should_retry_predicate(self):
        assert integration_should_retry(UpstreamTimeoutError("t"), 4) is True
        assert integration_should_retry(UpstreamNotFoundError("n"), 1) is False
        assert integration_should_retry(RuntimeError("x"), 2) is True
        assert integration_should_retry(RuntimeError("x"), 3) is False

    def test_delay_grows_and_caps(self):
        assert 1.0 <= integration_delay(1) < 2.0
        assert 4.0 <= integration_delay(3) < 5.0
        assert integration_delay(10) == 30.0


@pytest.mark.unit
class TestCriticalPolicy:
    async def test_retries_ten_times(self, executor, sleeps):
        operation = Flaky(99, UpstreamServerError("503"))

        with pytest.raises(UpstreamServerError):
            await executor.with_strategy(operation, critical_policy())

        assert operation.calls == CRITICAL_RETRIES + 1
        assert sleeps[0] == 0.5
        assert max(sleeps) == 5.0

    async def test_open_circuit_not_retried(self, executor):
        operation = Flaky(1, CircuitBreakerOpenError("open"))

        with pytest.raises(CircuitBreakerOpenError):
            await executor.with_strategy(operation, critical_policy())

        assert operation.calls == 1
