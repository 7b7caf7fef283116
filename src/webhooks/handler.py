"""
Webhook Event Handler

Turns ERP change events into high-priority queue jobs.

Events:
    stock.updated                  -> stock-sync      sync-stock-delta     priority 25
    stock.depleted                 -> critical-stock  alert-zero-stock     priority 30
    stock.critical                 -> critical-stock  sync-critical-stock  priority 25
    product.created|updated        -> erp-sync        sync-products-delta  priority 15
    product.deleted                -> cache invalidation only

Every stock event drops the product's cached stock first so reads fall
through to fresh data while the job waits. Events are acknowledged once
enqueued, not once processed.
"""

from typing import Any

from src.core.config.constants import (
    CRITICAL_RETRIES,
    PRIORITY_WEBHOOK_PRODUCT,
    PRIORITY_WEBHOOK_STOCK,
    PRIORITY_ZERO_STOCK,
    ErpCatalogJobType,
    ErpStockJobType,
    QueueName,
    Stage,
)
from src.core.exceptions import MalformedWebhookEventError, UnknownWebhookEventError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

STOCK_UPDATED = "stock.updated"
STOCK_DEPLETED = "stock.depleted"
STOCK_CRITICAL = "stock.critical"
PRODUCT_CREATED = "product.created"
PRODUCT_UPDATED = "product.updated"
PRODUCT_DELETED = "product.deleted"

STOCK_EVENTS = (STOCK_UPDATED, STOCK_DEPLETED, STOCK_CRITICAL)
PRODUCT_EVENTS = (PRODUCT_CREATED, PRODUCT_UPDATED, PRODUCT_DELETED)


def _items(data: Any, id_field: str) -> list[dict[str, Any]]:
    """Every item is checked before any job is enqueued."""
    if data is None:
        return []
    items = data if isinstance(data, list) else [data]
    for item in items:
        if not isinstance(item, dict) or item.get(id_field) is None:
            raise MalformedWebhookEventError(
                f"Event data items need an '{id_field}' field", details={"id_field": id_field}
            )
    return items


class WebhookHandler:
    def __init__(self, queues, stock_cache, product_cache=None):
        self._queues = queues
        self._stock = stock_cache
        self._products = product_cache

    async def handle_stock_event(self, event: str, data: Any) -> list[str]:
        """
        Returns:
            Ids of the enqueued jobs

        Raises:
            UnknownWebhookEventError: ``event`` is not a stock event
            MalformedWebhookEventError: ``data`` items lack ``product_id``
        """
        if event not in STOCK_EVENTS:
            raise UnknownWebhookEventError(f"Unknown stock event: {event}", details={"event": event})

        job_ids = []
        for item in _items(data, "product_id"):
            product_id = str(item["product_id"])
            await self._stock.invalidate(product_id)
            payload = {
                "product_id": product_id,
                "sku": item.get("sku"),
                "quantity": item.get("quantity"),
                "location": item.get("warehouse"),
                "source": "webhook",
            }

            if event == STOCK_UPDATED:
                job = await self._queues.add(
                    QueueName.STOCK_SYNC.value, ErpStockJobType.SYNC_STOCK_DELTA.value, payload,
                    priority=PRIORITY_WEBHOOK_STOCK, attempts=5,
                )
                logger.info("Stock update received", stage=Stage.WEBHOOK.value, product_id=product_id)
            elif event == STOCK_DEPLETED:
                job = await self._queues.add(
                    QueueName.CRITICAL_STOCK.value, ErpStockJobType.ALERT_ZERO_STOCK.value,
                    {**payload, "quantity": 0},
                    priority=PRIORITY_ZERO_STOCK, attempts=CRITICAL_RETRIES,
                )
                logger.error("Stock depletion received", stage=Stage.WEBHOOK.value, product_id=product_id)
            else:
                job = await self._queues.add(
                    QueueName.CRITICAL_STOCK.value, ErpStockJobType.SYNC_CRITICAL_STOCK.value, payload,
                    priority=PRIORITY_WEBHOOK_STOCK, attempts=7,
                )
                logger.warning("Critical stock received", stage=Stage.WEBHOOK.value, product_id=product_id)
            job_ids.append(job.id)
        return job_ids

    async def handle_product_event(self, event: str, data: Any) -> list[str]:
        if event not in PRODUCT_EVENTS:
            raise UnknownWebhookEventError(f"Unknown product event: {event}", details={"event": event})

        job_ids = []
        for item in _items(data, "id"):
            product_id = str(item["id"])
            if event == PRODUCT_DELETED:
                await self._stock.invalidate(product_id)
                if self._products is not None:
                    await self._products.invalidate_product(product_id)
                logger.info("Product deletion received", stage=Stage.WEBHOOK.value, product_id=product_id)
                continue

            job = await self._queues.add(
                QueueName.ERP_SYNC.value, ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value,
                {"product_id": product_id, "sku": item.get("sku"), "source": "webhook"},
                priority=PRIORITY_WEBHOOK_PRODUCT, attempts=3,
            )
            job_ids.append(job.id)
            logger.info(
                "Product change received", stage=Stage.WEBHOOK.value, product_id=product_id, webhook_event=event
            )
        return job_ids
