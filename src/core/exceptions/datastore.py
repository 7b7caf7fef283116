"""
Central Datastore Exceptions

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class DatastoreError(StockSyncError):
    """Raised when the central datastore rejects or fails a request."""
    pass
