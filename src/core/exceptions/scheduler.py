"""
Scheduler Exceptions

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class SchedulerError(StockSyncError):
    """Base exception for scheduler errors."""
    pass


class UnknownTimerError(SchedulerError):
    """Raised when a timer name is not registered."""
    pass
