"""
Rate Limit Exceptions

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class RateLimitError(StockSyncError):
    """Raised when a rate limiter is misconfigured or cannot throttle."""
    pass
