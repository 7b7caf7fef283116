"""
Alert Exceptions

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class AlertDispatchError(StockSyncError):
    """
    Raised by a channel when an alert cannot be delivered.

    The alert manager logs it and never propagates it to the caller.
    """
    pass
