"""
Sync Workers

Job processors for every queue plus stock threshold routing.
"""

from .erp_catalog_worker import ErpCatalogWorker
from .erp_stock_worker import ErpStockWorker
from .notification_worker import NotificationWorker
from .processors import register_processors
from .resource_sync_worker import ResourceSyncWorker
from .thresholds import StockAlertRouter, StockEvent, evaluate_entries, evaluate_records

__all__ = [
    "ResourceSyncWorker",
    "ErpStockWorker",
    "ErpCatalogWorker",
    "NotificationWorker",
    "register_processors",
    "StockAlertRouter",
    "StockEvent",
    "evaluate_records",
    "evaluate_entries",
]
