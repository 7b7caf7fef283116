"""
Sync Worker Exceptions

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class SyncError(StockSyncError):
    """Base exception for sync job errors."""
    pass


class UnknownJobTypeError(SyncError):
    """Raised when a job name has no handler in its worker."""
    pass
