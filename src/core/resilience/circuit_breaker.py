"""
Circuit Breaker for Upstream Integrations.

One breaker instance guards one upstream integration (ERP general API, ERP stock
API, POS API, notification channel). State is owned by the instance and never
shared, so a failing POS server cannot trip the ERP circuit.

MECHANISM OF ACTION:
-------------------
- **CLOSED**: Requests are allowed.
  - On Success: failure counter resets to 0.
  - On Failure: failure counter increments; reaching the threshold opens the
    circuit with ``next_attempt = now + recovery_timeout``.

- **OPEN**: Requests fail immediately with ``CircuitBreakerOpenError``.
  - The first call after ``next_attempt`` moves the circuit to HALF_OPEN
    before the operation runs.

- **HALF_OPEN**: Probing mode.
  - Each success increments the success counter; three successes close the
    circuit and reset both counters.
  - Any single failure reopens the circuit with a fresh ``next_attempt``.

Only ``reset()`` may force a transition from outside.
Not-found errors pass through without touching the counters.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from src.core.config.constants import HALF_OPEN_SUCCESS_THRESHOLD, CircuitState, Stage
from src.core.config.settings import get_settings
from src.core.exceptions import CircuitBreakerOpenError, UpstreamNotFoundError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

StateListener = Callable[[str, CircuitState], None]


@dataclass
class CircuitBreakerStats:
    """Point-in-time view of a breaker, safe to serialize."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    failure_threshold: int
    recovery_timeout: float
    next_attempt: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
            "next_attempt": self.next_attempt,
        }


class CircuitBreaker:
    """
    In-process circuit breaker for a single upstream.

    Args:
        name: Integration name used in logs, errors and metrics
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds the circuit stays open before probing
        excluded: Errors that prove the upstream answered; re-raised without
            counting as a failure or a success
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        excluded: tuple[type[BaseException], ...] = (UpstreamNotFoundError,),
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._excluded = excluded

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt: float | None = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def next_attempt(self) -> float | None:
        return self._next_attempt

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with (name, new_state) on every transition."""
        self._listeners.append(listener)

    async def execute(self, operation: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run ``operation`` through the breaker.

        Raises:
            CircuitBreakerOpenError: If the circuit is open and the cooldown has not elapsed
        """
        if self._state == CircuitState.OPEN:
            if self._next_attempt is not None and self._clock() < self._next_attempt:
                raise CircuitBreakerOpenError(
                    f"Circuit breaker is OPEN for {self.name}",
                    details={
                        "integration": self.name,
                        "retry_in_seconds": round(self._next_attempt - self._clock(), 3),
                    },
                )
            self._transition(CircuitState.HALF_OPEN)

        try:
            result = await operation(*args, **kwargs)
        except self._excluded:
            raise
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= HALF_OPEN_SUCCESS_THRESHOLD:
                self._failure_count = 0
                self._success_count = 0
                self._next_attempt = None
                self._transition(CircuitState.CLOSED)
            return

        self._failure_count = 0

    def _on_failure(self) -> None:
        self._failure_count += 1

        if self._state == CircuitState.HALF_OPEN:
            self._open()
            return

        logger.debug(
            "Circuit breaker recorded failure",
            stage="CB.2",
            integration=self.name,
            failures=self._failure_count,
            threshold=self.failure_threshold,
        )
        if self._failure_count >= self.failure_threshold:
            self._open()

    def _open(self) -> None:
        self._success_count = 0
        self._next_attempt = self._clock() + self.recovery_timeout
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker {old_state.value} -> {new_state.value}",
            stage=Stage.CIRCUIT_BREAKER.value,
            integration=self.name,
            failures=self._failure_count,
            next_attempt_in=self.recovery_timeout if new_state == CircuitState.OPEN else None,
        )

        for listener in self._listeners:
            listener(self.name, new_state)

    def reset(self) -> None:
        """Force the circuit CLOSED and clear counters (operator action)."""
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt = None
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)

    def get_stats(self) -> CircuitBreakerStats:
        return CircuitBreakerStats(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            failure_threshold=self.failure_threshold,
            recovery_timeout=self.recovery_timeout,
            next_attempt=self._next_attempt,
        )


# ============================================================================
# Manager & Factory
# ============================================================================


class CircuitBreakerManager:
    """Registry of circuit breakers, one per upstream integration."""

    def __init__(self):
        self.settings = get_settings()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._listeners: list[StateListener] = []

    def get_breaker(
        self,
        name: str,
        failure_threshold: int | None = None,
        recovery_timeout: float | None = None,
    ) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first use."""
        if name not in self._breakers:
            cb_settings = self.settings.circuit_breaker
            breaker = CircuitBreaker(
                name,
                failure_threshold=failure_threshold or cb_settings.CB_FAILURE_THRESHOLD,
                recovery_timeout=recovery_timeout or cb_settings.CB_RECOVERY_TIMEOUT,
            )
            for listener in self._listeners:
                breaker.add_listener(listener)
            self._breakers[name] = breaker
        return self._breakers[name]

    def add_listener(self, listener: StateListener) -> None:
        """Attach a transition listener to every current and future breaker."""
        self._listeners.append(listener)
        for breaker in self._breakers.values():
            breaker.add_listener(listener)

    def names(self) -> list[str]:
        return list(self._breakers)

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_stats().to_dict() for name, breaker in self._breakers.items()}

    def reset(self, name: str) -> bool:
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True


# Global Instance
_cb_manager: CircuitBreakerManager | None = None


def get_circuit_breaker_manager() -> CircuitBreakerManager:
    global _cb_manager
    if _cb_manager is None:
        _cb_manager = CircuitBreakerManager()
    return _cb_manager
