"""
Domain models shared across layers.
"""

from src.core.models.alert import Alert
from src.core.models.stock import StockEntry, StockRecord, classify_stock
from src.core.models.sync import SyncJob, SyncJobOptions, SyncStatus

__all__ = [
    "Alert",
    "StockEntry",
    "StockRecord",
    "classify_stock",
    "SyncJob",
    "SyncJobOptions",
    "SyncStatus",
]
