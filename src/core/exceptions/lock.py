"""
Distributed Lock Exceptions

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class LockError(StockSyncError):
    """Base exception for distributed lock errors."""
    pass


class LockUnavailableError(LockError):
    """
    Raised when a resource lock is held by another worker.

    The job is not executed; the owning queue reschedules it with its
    standard backoff.
    """
    pass
