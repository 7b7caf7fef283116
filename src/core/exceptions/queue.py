"""
Queue-Related Exceptions

All exceptions related to the priority job queues

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class QueueError(StockSyncError):
    """Base exception for queue errors."""
    pass


class UnknownQueueError(QueueError):
    """Raised when a queue name is not configured."""
    pass


class JobProcessorNotFoundError(QueueError):
    """Raised when a worker starts for a queue with no registered processor."""
    pass


class JobStalledError(QueueError):
    """Recorded as the failure of an attempt that stayed active past the stall timeout."""
    pass
