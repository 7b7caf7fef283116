"""
Resource Sync Worker (retail POS stores)

Processes ``pos-sync`` jobs: one job synchronizes one store.

Architecture:
    ResourceSyncWorker (Public API)
        ├── DistributedLock (one active sync per store, across instances)
        ├── SyncStatusCache (per-store progress and error counter)
        ├── RetailPosClient (paginated products, batched stock)
        ├── CentralDatastore (idempotent upserts, integration log)
        └── StockAlertRouter (low/zero stock -> alert queues)

Job types:
    product_sync      paginate the catalog until a short page, upsert by external_id
    stock_sync        stock for every known product, batched and paced
    full_sync         product_sync then stock_sync
    incremental_sync  full_sync when the store never synced, stock_sync otherwise

Architectural Decision: the lock is taken before any status mutation
- A job that finds the store locked raises LockUnavailableError untouched, so
  the queue retries it with its normal backoff and the status is not modified
- Any other failure marks the status ``error``, bumps the error counter,
  writes the integration log and re-raises for the queue's retry policy
- The lock is released on every path (DistributedLock.hold)

Author: System Architect
Date: 2025-12-16
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

from src.core.config.constants import (
    KEY_POS_LOCK,
    POS_PRODUCT_PAGE_DELAY,
    POS_STOCK_BATCH_DELAY,
    Stage,
    SyncJobType,
    SyncStatusState,
)
from src.core.exceptions import StockSyncError, UnknownJobTypeError
from src.core.interfaces.datastore import TABLE_POS_PRODUCTS, TABLE_POS_STOCK, CentralDatastore
from src.core.logging.logger import get_logger, log_stage
from src.core.models.stock import StockRecord
from src.core.models.sync import SyncJob, SyncJobOptions
from src.infrastructure.cache.sync_status_cache import SyncStatusCache
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.queue.job import Job
from src.integrations.retail_pos_client import RetailPosClient

from .thresholds import StockAlertRouter, evaluate_records

logger = get_logger(__name__)

SOURCE = "pos"
SYNC_LOCK_TTL = 600
UPSERT_CHUNK = 50
MAX_CONSECUTIVE_PAGE_FAILURES = 3

_PRODUCT_TYPES = (SyncJobType.FULL_SYNC, SyncJobType.INCREMENTAL_SYNC, SyncJobType.PRODUCT_SYNC)
_STOCK_TYPES = (SyncJobType.FULL_SYNC, SyncJobType.INCREMENTAL_SYNC, SyncJobType.STOCK_SYNC)


def chunked(items: list[Any], size: int) -> list[list[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def stock_row(record: StockRecord) -> dict[str, Any]:
    """Processed POS stock record -> ``pos_stock`` row keyed by (product_id, store_id)."""
    return {
        "product_id": record.product_id,
        "store_id": record.store_id,
        "store_name": record.store_name,
        "quantity": record.quantity,
        "minimum_quantity": record.minimum_quantity,
        "po_ordered_quantity": record.po_ordered_quantity,
        "po_received_quantity": record.po_received_quantity,
        "status": record.status.value,
        "updated_at": record.updated_at.isoformat(),
    }


class ResourceSyncWorker:
    """
    Usage:
        worker = ResourceSyncWorker(pos_client, datastore, status_cache, lock, router)
        processors.register_processor("pos-sync", worker.process)
    """

    def __init__(
        self,
        client: RetailPosClient,
        datastore: CentralDatastore,
        status_cache: SyncStatusCache,
        lock: DistributedLock,
        router: StockAlertRouter,
        lock_ttl: int = SYNC_LOCK_TTL,
        product_page_delay: float = POS_PRODUCT_PAGE_DELAY,
        stock_batch_delay: float = POS_STOCK_BATCH_DELAY,
    ):
        self._client = client
        self._datastore = datastore
        self._status = status_cache
        self._lock = lock
        self._router = router
        self.lock_ttl = lock_ttl
        self.product_page_delay = product_page_delay
        self.stock_batch_delay = stock_batch_delay

    @staticmethod
    def create_lock(store, ttl: int = SYNC_LOCK_TTL) -> DistributedLock:
        return DistributedLock(store, prefix=KEY_POS_LOCK, default_ttl=ttl)

    async def process(self, job: Job) -> dict[str, Any]:
        """
        STAGE-SYNC.1: Process one resource sync job

        Raises:
            LockUnavailableError: Another worker is syncing this store
        """
        sync_job = SyncJob.model_validate(job.data)
        store_id = sync_job.resource_id

        log_stage(
            logger, "SYNC.1", "Processing resource sync job",
            job_type=sync_job.type.value, store_id=store_id, options=sync_job.options.model_dump(),
        )

        async with self._lock.hold(store_id, self.lock_ttl):
            return await self._run(sync_job)

    async def _run(self, sync_job: SyncJob) -> dict[str, Any]:
        store_id = sync_job.resource_id
        started = time.monotonic()
        await self._status.update(store_id, status=SyncStatusState.SYNCING)

        try:
            result = await self._dispatch(sync_job)
        except Exception as e:
            current = await self._status.get_or_create(store_id)
            await self._status.update(
                store_id, status=SyncStatusState.ERROR, error_count=current.error_count + 1
            )
            logger.error(
                "Resource sync job failed",
                stage=Stage.SYNC.value,
                job_type=sync_job.type.value,
                store_id=store_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._datastore.append_integration_log(
                SOURCE,
                f"{sync_job.type.value}-{store_id}",
                "error",
                details={
                    "store_id": store_id,
                    "options": sync_job.options.model_dump(),
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
                error=str(e),
            )
            raise

        now = datetime.now(timezone.utc)
        changes: dict[str, Any] = {"status": SyncStatusState.COMPLETED}
        if sync_job.type in _PRODUCT_TYPES:
            changes["last_product_sync"] = now
        if sync_job.type in _STOCK_TYPES:
            changes["last_stock_sync"] = now
        await self._status.update(store_id, **changes)

        logger.info(
            "Resource sync job completed",
            stage=Stage.SYNC.value,
            job_type=sync_job.type.value,
            store_id=store_id,
            result=result,
        )
        return result

    async def _dispatch(self, sync_job: SyncJob) -> dict[str, Any]:
        store_id, options = sync_job.resource_id, sync_job.options
        if sync_job.type == SyncJobType.FULL_SYNC:
            return await self.sync_full_store(store_id, options)
        if sync_job.type == SyncJobType.INCREMENTAL_SYNC:
            return await self.sync_incremental(store_id, options)
        if sync_job.type == SyncJobType.STOCK_SYNC:
            return await self.sync_stock(store_id, options)
        if sync_job.type == SyncJobType.PRODUCT_SYNC:
            stats = await self.sync_products(store_id, options)
            return {"type": sync_job.type.value, **stats}
        raise UnknownJobTypeError(f"Unknown resource sync job type: {sync_job.type}")

    # =========================================================================
    # Job types
    # =========================================================================

    async def sync_full_store(self, store_id: str, options: SyncJobOptions) -> dict[str, Any]:
        started = time.monotonic()
        products = await self.sync_products(store_id, options)
        stock = await self.sync_stock(store_id, options)
        stats = {
            "products_processed": products["processed"],
            "products_upserted": products["upserted"],
            "stock_processed": stock["stats"]["processed"],
            "stock_upserted": stock["stats"]["upserted"],
            "errors": products["errors"] + stock["stats"]["errors"],
        }
        duration_ms = int((time.monotonic() - started) * 1000)

        await self._datastore.append_integration_log(
            SOURCE, "full-sync", "success",
            details={"store_id": store_id, "stats": stats, "duration_ms": duration_ms},
        )
        return {"type": SyncJobType.FULL_SYNC.value, "stats": stats, "duration_ms": duration_ms}

    async def sync_incremental(self, store_id: str, options: SyncJobOptions) -> dict[str, Any]:
        status = await self._status.get_or_create(store_id)
        if status.last_sync is None:
            logger.info("No previous sync found, performing full sync", stage=Stage.SYNC.value, store_id=store_id)
            return await self.sync_full_store(store_id, options)
        return await self.sync_stock(store_id, options)

    async def sync_stock(self, store_id: str, options: SyncJobOptions) -> dict[str, Any]:
        """
        STAGE-SYNC.2: Stock for every known product of the store

        Batches are paced with a fixed delay. Each processed record is
        classified; low and zero stock are routed to the alert queues.
        """
        started = time.monotonic()
        stats = {"processed": 0, "upserted": 0, "errors": 0, "critical_alerts": 0, "zero_stock_alerts": 0}

        products = await self._datastore.list_products(store_id)
        sids = [p["external_id"] for p in products if p.get("external_id")]
        if not sids:
            logger.info("No products found for stock sync", stage=Stage.SYNC.value, store_id=store_id)
            return {"type": SyncJobType.STOCK_SYNC.value, "stats": stats, "duration_ms": 0}

        batches = chunked(sids, options.batch_size)
        for index, batch in enumerate(batches):
            log_stage(
                logger, "SYNC.2", "Processing stock batch", level="debug",
                store_id=store_id, batch=index + 1, batches=len(batches), size=len(batch),
            )
            result = await self._client.get_products_stock_batch(batch, store_id)

            if result.success:
                upsert = await self._datastore.batch_upsert(
                    TABLE_POS_STOCK,
                    [stock_row(r) for r in result.success],
                    ["product_id", "store_id"],
                    UPSERT_CHUNK,
                )
                stats["upserted"] += upsert.success_count
                stats["errors"] += upsert.failed_count
            stats["processed"] += len(result.success)
            stats["errors"] += len(result.errors)

            critical, zero = evaluate_records(result.success)
            routed = await self._router.route(critical, zero)
            stats["critical_alerts"] += routed["critical_alerts"]
            stats["zero_stock_alerts"] += routed["zero_stock_alerts"]

            await self._status.update(store_id, stock_synced=stats["processed"])

            if index < len(batches) - 1:
                await asyncio.sleep(self.stock_batch_delay)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Stock sync completed", stage=Stage.SYNC.value, store_id=store_id, duration_ms=duration_ms, **stats)
        await self._datastore.append_integration_log(
            SOURCE, "stock-sync", "success",
            details={"store_id": store_id, "stats": stats, "duration_ms": duration_ms},
        )
        return {"type": SyncJobType.STOCK_SYNC.value, "stats": stats, "duration_ms": duration_ms}

    async def sync_products(self, store_id: str, options: SyncJobOptions) -> dict[str, int]:
        """
        STAGE-SYNC.3: Paginate the store catalog

        Stops on an empty or short page. A failing page is counted and skipped;
        after MAX_CONSECUTIVE_PAGE_FAILURES in a row the last error propagates.
        """
        stats = {"processed": 0, "upserted": 0, "errors": 0}
        limit = options.batch_size
        offset = options.offset
        failures = 0

        while True:
            try:
                page = await self._client.get_products(store_id, limit=limit, offset=offset)
            except StockSyncError as e:
                logger.error(
                    "Product page failed",
                    stage=Stage.SYNC.value, store_id=store_id, offset=offset, error=str(e),
                )
                stats["errors"] += 1
                failures += 1
                if failures >= MAX_CONSECUTIVE_PAGE_FAILURES:
                    raise
                offset += limit
                continue
            failures = 0

            if not page.data:
                break

            upsert = await self._datastore.batch_upsert(
                TABLE_POS_PRODUCTS,
                [RetailPosClient.product_row(p, store_id) for p in page.data],
                ["external_id"],
                UPSERT_CHUNK,
            )
            stats["processed"] += len(page.data)
            stats["upserted"] += upsert.success_count
            stats["errors"] += upsert.failed_count
            await self._status.update(store_id, products_synced=stats["processed"])

            offset += limit
            if len(page.data) < limit:
                break
            if options.limit is not None and stats["processed"] >= options.limit:
                break
            await asyncio.sleep(self.product_page_delay)

        logger.info("Product sync completed", stage=Stage.SYNC.value, store_id=store_id, **stats)
        return stats
