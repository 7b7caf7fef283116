"""
Resilience Module - Core Resilience Components

Every upstream call passes through four independent layers, outermost first:

    Rate Limiter -> Retry Executor -> Circuit Breaker -> Transport

COMPONENTS:
===========
- SlidingWindowRateLimiter: blocking per-integration throttle
- RetryExecutor: exponential, fixed and policy-driven retries (tenacity)
- CircuitBreaker: per-integration failure isolation
- ResilientCall: composition of the three around a plain call function

Author: System Architect
Date: 2025-12-09
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerManager,
    CircuitBreakerStats,
    get_circuit_breaker_manager,
)
from .rate_limiter import SlidingWindowRateLimiter
from .resilient_call import ResilientCall, with_resilience
from .retry import (
    RetryExecutor,
    RetryPolicy,
    create_retry_decorator,
    critical_policy,
    integration_delay,
    integration_policy,
    integration_should_retry,
)

__all__ = [
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerManager",
    "CircuitBreakerStats",
    "get_circuit_breaker_manager",
    # Rate Limiting
    "SlidingWindowRateLimiter",
    # Retry
    "RetryExecutor",
    "RetryPolicy",
    "create_retry_decorator",
    "critical_policy",
    "integration_delay",
    "integration_policy",
    "integration_should_retry",
    # Composition
    "ResilientCall",
    "with_resilience",
]
