"""
Cache-Related Exceptions

All exceptions related to the shared key-value store (Redis or in-memory)

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class CacheError(StockSyncError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the key-value store.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect URL configuration
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a key operation fails.

    Common causes:
    - Wrong value type stored under the key
    - Operation timeout
    - Memory limit exceeded
    """
    pass
