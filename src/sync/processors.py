"""
Processor Wiring

Binds every queue to the worker that consumes it. Called once from the
composition root; nothing registers itself at import time.
"""

from src.core.config.constants import QueueName
from src.infrastructure.queue.registry import ProcessorRegistry

from .erp_catalog_worker import ErpCatalogWorker
from .erp_stock_worker import ErpStockWorker
from .notification_worker import NotificationWorker
from .resource_sync_worker import ResourceSyncWorker


def register_processors(
    registry: ProcessorRegistry,
    resource_worker: ResourceSyncWorker,
    erp_stock_worker: ErpStockWorker,
    erp_catalog_worker: ErpCatalogWorker,
    notification_worker: NotificationWorker,
) -> ProcessorRegistry:
    registry.register_processor(QueueName.POS_SYNC.value, resource_worker.process)
    registry.register_processor(QueueName.STOCK_SYNC.value, erp_stock_worker.process)
    registry.register_processor(QueueName.CRITICAL_STOCK.value, erp_stock_worker.process)
    registry.register_processor(QueueName.ERP_SYNC.value, erp_catalog_worker.process)
    registry.register_processor(QueueName.NOTIFICATION.value, notification_worker.process)
    return registry
