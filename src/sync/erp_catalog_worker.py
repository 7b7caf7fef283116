"""
ERP Catalog Worker

Processes ``erp-sync`` jobs: products, customers and sales deltas.

Every entity follows the same path: fetch the delta since the given (or last
logged) sync, transform to the internal row shape, upsert keyed by
``external_id``, and log the counts. ``full-sync`` runs the three deltas
concurrently without a lower bound.

Each entity sync holds its own resource lock, so two runs of the same delta
never write concurrently.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from src.core.config.constants import UPSERT_BATCH_SIZE, ErpCatalogJobType, Stage
from src.core.exceptions import LockUnavailableError, UnknownJobTypeError
from src.core.interfaces.datastore import (
    TABLE_CUSTOMERS,
    TABLE_PRODUCTS,
    TABLE_SALES,
    CentralDatastore,
)
from src.core.logging.logger import get_logger
from src.infrastructure.cache.product_cache import ProductCache
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.queue.job import Job
from src.integrations.erp_client import ErpClient

from .erp_stock_worker import parse_timestamp

logger = get_logger(__name__)

SOURCE = "erp"
CACHED_PRODUCTS = 50
SALES_UPSERT_CHUNK = 50
CATALOG_LOCK_TTL = 300

_UNBOUNDED = object()


class ErpCatalogWorker:
    def __init__(
        self,
        client: ErpClient,
        datastore: CentralDatastore,
        product_cache: ProductCache,
        lock: DistributedLock,
        lock_ttl: int = CATALOG_LOCK_TTL,
    ):
        self._client = client
        self._datastore = datastore
        self._products = product_cache
        self._lock = lock
        self.lock_ttl = lock_ttl

    async def process(self, job: Job) -> dict[str, Any]:
        logger.info("Processing ERP catalog job", stage=Stage.SYNC.value, job_name=job.name, data=job.data)
        last_sync = parse_timestamp(job.data.get("last_sync"))
        try:
            if job.name == ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value:
                return await self.sync_products_delta(last_sync)
            if job.name == ErpCatalogJobType.SYNC_CUSTOMERS_DELTA.value:
                return await self.sync_customers_delta(last_sync)
            if job.name == ErpCatalogJobType.SYNC_SALES_DELTA.value:
                return await self.sync_sales_delta(last_sync)
            if job.name == ErpCatalogJobType.FULL_SYNC.value:
                return await self.full_sync()
            raise UnknownJobTypeError(
                f"Unknown ERP catalog job type: {job.name}", job_id=job.id, details={"queue": job.queue}
            )
        except LockUnavailableError:
            logger.info("ERP catalog sync already running", stage=Stage.SYNC.value, job_name=job.name)
            raise
        except Exception as e:
            logger.error(
                "ERP catalog job failed",
                stage=Stage.SYNC.value,
                job_name=job.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._datastore.append_integration_log(
                SOURCE, job.name, "error", details={"data": job.data}, error=str(e)
            )
            raise

    def _hold(self, entity: str):
        return self._lock.hold(f"erp-catalog:{entity}", self.lock_ttl)

    async def _sync_delta(
        self,
        entity: str,
        table: str,
        fetch: Callable[[datetime | None], Awaitable[list[dict[str, Any]]]],
        last_sync: Any,
        chunk: int = UPSERT_BATCH_SIZE,
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        started = time.monotonic()
        if last_sync is _UNBOUNDED:
            last_sync = None
        elif last_sync is None:
            last_sync = await self._datastore.get_last_sync_timestamp(SOURCE, entity)

        records = await fetch(last_sync)
        if not records:
            logger.info("Nothing to sync", stage=Stage.SYNC.value, entity=entity)
            stats = {"processed": 0, "duration_ms": int((time.monotonic() - started) * 1000)}
            await self._datastore.append_integration_log(SOURCE, entity, "success", details=stats)
            return stats, []

        rows = [ErpClient.transform_to_internal(r) for r in records]
        upsert = await self._datastore.batch_upsert(table, rows, ["external_id"], chunk)
        stats = {
            "processed": len(records),
            "success_count": upsert.success_count,
            "failed_count": upsert.failed_count,
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        logger.info("Delta sync completed", stage=Stage.SYNC.value, entity=entity, **stats)
        await self._datastore.append_integration_log(SOURCE, entity, "success", details=stats)
        return stats, rows

    async def sync_products_delta(self, last_sync: Any = None) -> dict[str, Any]:
        entity = ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value
        async with self._hold(entity):
            stats, rows = await self._sync_delta(
                entity, TABLE_PRODUCTS, self._client.fetch_products_delta, last_sync
            )
            if rows:
                await self._products.set_products(rows[:CACHED_PRODUCTS], id_field="external_id")
        return stats

    async def sync_customers_delta(self, last_sync: Any = None) -> dict[str, Any]:
        entity = ErpCatalogJobType.SYNC_CUSTOMERS_DELTA.value
        async with self._hold(entity):
            stats, rows = await self._sync_delta(
                entity, TABLE_CUSTOMERS, self._client.fetch_customers_delta, last_sync
            )
            if rows:
                await self._products.set_customers(rows, id_field="external_id")
        return stats

    async def sync_sales_delta(self, last_sync: Any = None) -> dict[str, Any]:
        entity = ErpCatalogJobType.SYNC_SALES_DELTA.value
        async with self._hold(entity):
            stats, _ = await self._sync_delta(
                entity, TABLE_SALES, self._client.fetch_sales_delta, last_sync, chunk=SALES_UPSERT_CHUNK
            )
        return stats

    async def full_sync(self) -> dict[str, Any]:
        started = time.monotonic()
        products, customers, sales = await asyncio.gather(
            self.sync_products_delta(_UNBOUNDED),
            self.sync_customers_delta(_UNBOUNDED),
            self.sync_sales_delta(_UNBOUNDED),
        )
        result = {
            "products": products,
            "customers": customers,
            "sales": sales,
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        logger.info("Full sync completed", stage=Stage.SYNC.value, duration_ms=result["duration_ms"])
        await self._datastore.append_integration_log(
            SOURCE, ErpCatalogJobType.FULL_SYNC.value, "success", details={"duration_ms": result["duration_ms"]}
        )
        return result
