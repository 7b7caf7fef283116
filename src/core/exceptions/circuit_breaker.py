"""
Circuit Breaker Exceptions

All exceptions related to circuit breaker operations

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class CircuitBreakerError(StockSyncError):
    """Base exception for circuit breaker errors."""
    pass


class CircuitBreakerOpenError(CircuitBreakerError):
    """
    Raised when circuit breaker is open (fail fast).

    The upstream is not contacted and no retry budget is consumed.
    The circuit moves to half-open on the first call after its cooldown.
    """
    pass
