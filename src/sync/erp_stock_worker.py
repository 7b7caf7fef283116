"""
ERP Stock Worker

Processes ``stock-sync`` and ``critical-stock`` jobs against the ERP stock API.

Job names:
    sync-stock-delta     stock changed since the last successful delta
    sync-critical-stock  items at or below the threshold, refreshed often
    alert-zero-stock     dispatch the CRITICAL out-of-stock alert
    preload-popular      warm the stock cache for the most sold products

Each job appends to the integration log; a failure is logged with the job
data and re-raised so the queue applies its retry policy.

Delta and critical syncs each hold a resource lock while they write, so two
runs of the same sync never overlap; a job that finds its lock held goes back
to the queue untouched.
"""

import time
from datetime import datetime
from typing import Any

from src.core.config.constants import (
    CRITICAL_STOCK_THRESHOLD,
    POPULAR_PRODUCTS_LIMIT,
    Stage,
    ErpStockJobType,
)
from src.core.exceptions import LockUnavailableError, UnknownJobTypeError
from src.core.interfaces.datastore import TABLE_STOCK, CentralDatastore
from src.core.logging.logger import get_logger
from src.infrastructure.cache.stock_cache import StockCache
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.queue.job import Job
from src.integrations.erp_stock_client import ErpStockClient

from .thresholds import StockAlertRouter, evaluate_entries

logger = get_logger(__name__)

SOURCE = "erp"
DELTA_UPSERT_CHUNK = 100
CRITICAL_UPSERT_CHUNK = 50
DELTA_LOCK_RESOURCE = "erp-stock:delta"
CRITICAL_LOCK_RESOURCE = "erp-stock:critical"
STOCK_LOCK_TTL = 300


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class ErpStockWorker:
    def __init__(
        self,
        client: ErpStockClient,
        datastore: CentralDatastore,
        stock_cache: StockCache,
        router: StockAlertRouter,
        alerts,
        lock: DistributedLock,
        lock_ttl: int = STOCK_LOCK_TTL,
    ):
        self._client = client
        self._datastore = datastore
        self._cache = stock_cache
        self._router = router
        self._alerts = alerts
        self._lock = lock
        self.lock_ttl = lock_ttl

    async def process(self, job: Job) -> dict[str, Any]:
        logger.info("Processing ERP stock job", stage=Stage.SYNC.value, job_name=job.name, data=job.data)
        try:
            if job.name == ErpStockJobType.SYNC_STOCK_DELTA.value:
                return await self.sync_stock_delta(parse_timestamp(job.data.get("last_sync")))
            if job.name == ErpStockJobType.SYNC_CRITICAL_STOCK.value:
                return await self.sync_critical_stock(job.data.get("threshold", CRITICAL_STOCK_THRESHOLD))
            if job.name == ErpStockJobType.ALERT_ZERO_STOCK.value:
                return await self.alert_zero_stock(job.data)
            if job.name == ErpStockJobType.PRELOAD_POPULAR.value:
                return await self.preload_popular()
            raise UnknownJobTypeError(
                f"Unknown ERP stock job type: {job.name}", job_id=job.id, details={"queue": job.queue}
            )
        except LockUnavailableError:
            logger.info("ERP stock sync already running", stage=Stage.SYNC.value, job_name=job.name)
            raise
        except Exception as e:
            logger.error(
                "ERP stock job failed",
                stage=Stage.SYNC.value,
                job_name=job.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._datastore.append_integration_log(
                SOURCE, f"stock-{job.name}", "error", details={"data": job.data}, error=str(e)
            )
            raise

    async def sync_stock_delta(self, last_sync: datetime | None = None) -> dict[str, Any]:
        """Upsert, cache and threshold-check everything changed since ``last_sync``."""
        async with self._lock.hold(DELTA_LOCK_RESOURCE, self.lock_ttl):
            return await self._sync_stock_delta(last_sync)

    async def _sync_stock_delta(self, last_sync: datetime | None) -> dict[str, Any]:
        started = time.monotonic()
        if last_sync is None:
            last_sync = await self._datastore.get_last_sync_timestamp(
                SOURCE, ErpStockJobType.SYNC_STOCK_DELTA.value
            )

        items = await self._client.fetch_stock_delta(last_sync)
        if not items:
            logger.info("No stock changes to sync", stage=Stage.SYNC.value)
            stats = {"processed": 0, "duration_ms": int((time.monotonic() - started) * 1000)}
            await self._datastore.append_integration_log(
                SOURCE, ErpStockJobType.SYNC_STOCK_DELTA.value, "success", details=stats
            )
            return stats

        upsert = await self._datastore.batch_upsert(
            TABLE_STOCK,
            [ErpStockClient.transform_to_internal(item) for item in items],
            ["product_id", "warehouse"],
            DELTA_UPSERT_CHUNK,
        )

        entries = [ErpStockClient.to_stock_entry(item) for item in items]
        await self._cache.set_many(entries)

        critical, zero = evaluate_entries(entries, {item.product_id: item.sku for item in items})
        routed = await self._router.route(critical, zero)

        stats = {
            "processed": len(items),
            "success_count": upsert.success_count,
            "failed_count": upsert.failed_count,
            "critical_count": routed["critical_alerts"],
            "zero_stock_count": routed["zero_stock_alerts"],
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        logger.info("Stock delta sync completed", stage=Stage.SYNC.value, **stats)
        await self._datastore.append_integration_log(
            SOURCE, ErpStockJobType.SYNC_STOCK_DELTA.value, "success", details=stats
        )
        return stats

    async def sync_critical_stock(self, threshold: int = CRITICAL_STOCK_THRESHOLD) -> dict[str, Any]:
        """Refresh items at or below ``threshold``; they are cached with the short TTL."""
        async with self._lock.hold(CRITICAL_LOCK_RESOURCE, self.lock_ttl):
            return await self._sync_critical_stock(threshold)

    async def _sync_critical_stock(self, threshold: int) -> dict[str, Any]:
        started = time.monotonic()
        items = await self._client.fetch_critical_stock(threshold)
        if not items:
            logger.info("No critical stock items found", stage=Stage.SYNC.value, threshold=threshold)
            return {"processed": 0, "threshold": threshold}

        upsert = await self._datastore.batch_upsert(
            TABLE_STOCK,
            [{**ErpStockClient.transform_to_internal(item), "critical": True} for item in items],
            ["product_id", "warehouse"],
            CRITICAL_UPSERT_CHUNK,
        )

        entries = [ErpStockClient.to_stock_entry(item, critical=True) for item in items]
        await self._cache.set_many(entries)

        critical, _ = evaluate_entries(entries, {item.product_id: item.sku for item in items})
        await self._router.route(critical, [])

        stats = {
            "processed": len(items),
            "success_count": upsert.success_count,
            "failed_count": upsert.failed_count,
            "threshold": threshold,
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        logger.warning("Critical stock sync completed", stage=Stage.SYNC.value, **stats)
        await self._datastore.append_integration_log(
            SOURCE, ErpStockJobType.SYNC_CRITICAL_STOCK.value, "success", details=stats
        )
        return stats

    async def alert_zero_stock(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Dispatch the out-of-stock alert for one product.

        Product details come from the central store when the product is
        known there; the alert is sent either way.
        """
        product_id = data["product_id"]
        product = await self._datastore.find_product(product_id)
        if product is None:
            logger.warning("Product not found for zero stock alert", stage=Stage.SYNC.value, product_id=product_id)
            product = {}

        location = data.get("location")
        sent = await self._alerts.create_stock_alert(
            zero=True,
            product_id=product_id,
            quantity=data.get("quantity", 0),
            sku=data.get("sku") or product.get("sku"),
            location=data.get("location_name") or location,
            product_name=product.get("name"),
            resource_id=f"{location}:{product_id}" if location else product_id,
        )
        logger.warning("Zero stock alert processed", stage=Stage.SYNC.value, product_id=product_id, sent=sent)
        return {"product_id": product_id, "sent": sent}

    async def preload_popular(self, limit: int = POPULAR_PRODUCTS_LIMIT) -> dict[str, Any]:
        products = await self._datastore.list_active_products(limit)
        product_ids = [p["external_id"] for p in products if p.get("external_id")]
        if not product_ids:
            return {"preloaded": 0}

        items = await self._client.fetch_stock_batch(product_ids)
        await self._cache.preload_popular([ErpStockClient.to_stock_entry(item) for item in items])

        logger.info("Preloaded popular products to cache", stage=Stage.SYNC.value, count=len(items))
        return {"preloaded": len(items)}
