"""
Integration (Upstream HTTP) Exceptions

Every upstream failure mode maps to one class here so the retry policy
can decide on type alone.

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class IntegrationError(StockSyncError):
    """Base exception for upstream integration errors."""

    retryable: bool = False
    status_code: int | None = None


class UpstreamTimeoutError(IntegrationError):
    """Raised when an upstream call exceeds its timeout."""

    retryable = True


class UpstreamConnectionError(IntegrationError):
    """Raised when the connection to the upstream is refused or aborted."""

    retryable = True


class UpstreamNotFoundError(IntegrationError):
    """Raised on HTTP 404 for anything other than stock lookups."""

    status_code = 404


class UpstreamUnauthorizedError(IntegrationError):
    """
    Raised on HTTP 401.

    Not retried: almost always a wrong API key or client id.
    """

    status_code = 401


class UpstreamRateLimitError(IntegrationError):
    """Raised on HTTP 429."""

    retryable = True
    status_code = 429


class UpstreamServerError(IntegrationError):
    """Raised on HTTP 5xx."""

    retryable = True


class UpstreamHostNotFoundError(IntegrationError):
    """Raised when the upstream hostname cannot be resolved."""
    pass
