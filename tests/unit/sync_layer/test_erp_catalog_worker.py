"""
Unit Tests for ErpCatalogWorker
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.config.constants import ErpCatalogJobType, QueueName
from src.core.exceptions import LockUnavailableError, UnknownJobTypeError, UpstreamTimeoutError
from src.core.interfaces.datastore import TABLE_CUSTOMERS, TABLE_PRODUCTS, TABLE_SALES
from src.infrastructure.cache.product_cache import KEY_CUSTOMER, ProductCache
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.queue.job import Job
from src.integrations.erp_client import ErpClient
from src.sync.erp_catalog_worker import CACHED_PRODUCTS, ErpCatalogWorker


def job(name, data=None):
    return Job(id=f"{name}-1", queue=QueueName.ERP_SYNC.value, name=name, data=data or {}, created_at=0)


@pytest.fixture
def client():
    erp = MagicMock(spec=ErpClient)
    erp.fetch_products_delta = AsyncMock(return_value=[{"id": 1, "name": "Drill"}, {"id": 2, "name": "Saw"}])
    erp.fetch_customers_delta = AsyncMock(return_value=[{"id": 7, "name": "ACME"}])
    erp.fetch_sales_delta = AsyncMock(return_value=[])
    return erp


@pytest.fixture
def product_cache(cache_manager):
    return ProductCache(cache_manager)


@pytest.fixture
def erp_lock(store):
    return DistributedLock(store)


@pytest.fixture
def worker(client, datastore, product_cache, erp_lock):
    return ErpCatalogWorker(client, datastore, product_cache, erp_lock)


@pytest.mark.unit
class TestDeltas:
    async def test_products_delta_upserts_and_caches(self, worker, datastore, product_cache):
        stats = await worker.process(job(ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value))

        assert stats["processed"] == 2
        assert {r["external_id"] for r in datastore.rows(TABLE_PRODUCTS)} == {"1", "2"}
        assert (await product_cache.get_product("1"))["name"] == "Drill"

    async def test_only_first_products_are_cached(self, worker, client, product_cache):
        client.fetch_products_delta.return_value = [{"id": i} for i in range(CACHED_PRODUCTS + 5)]

        await worker.sync_products_delta()

        assert await product_cache.get_product(str(CACHED_PRODUCTS - 1)) is not None
        assert await product_cache.get_product(str(CACHED_PRODUCTS)) is None

    async def test_customers_delta(self, worker, datastore, cache_manager):
        stats = await worker.process(job(ErpCatalogJobType.SYNC_CUSTOMERS_DELTA.value))

        assert stats["success_count"] == 1
        assert datastore.rows(TABLE_CUSTOMERS)[0]["external_id"] == "7"
        assert (await cache_manager.get(f"{KEY_CUSTOMER}7"))["name"] == "ACME"

    async def test_empty_sales_delta(self, worker, datastore):
        stats = await worker.process(job(ErpCatalogJobType.SYNC_SALES_DELTA.value))

        assert stats["processed"] == 0
        assert datastore.rows(TABLE_SALES) == []
        assert datastore.logs[-1]["entity_type"] == ErpCatalogJobType.SYNC_SALES_DELTA.value

    async def test_delta_resumes_from_last_success(self, worker, client, datastore):
        await worker.sync_customers_delta()
        first_log = datastore.logs[-1]["created_at"]

        await worker.sync_customers_delta()

        assert client.fetch_customers_delta.await_args_list[0].args == (None,)
        assert client.fetch_customers_delta.await_args_list[1].args == (first_log,)

    async def test_full_sync_is_unbounded(self, worker, client, datastore):
        await datastore.append_integration_log("erp", ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value, "success")

        result = await worker.process(job(ErpCatalogJobType.FULL_SYNC.value))

        client.fetch_products_delta.assert_awaited_once_with(None)
        assert set(result) >= {"products", "customers", "sales", "duration_ms"}
        assert datastore.logs[-1]["entity_type"] == ErpCatalogJobType.FULL_SYNC.value


@pytest.mark.unit
class TestFailures:
    async def test_failure_is_logged_and_reraised(self, worker, client, datastore):
        client.fetch_products_delta.side_effect = UpstreamTimeoutError("erp timed out")

        with pytest.raises(UpstreamTimeoutError):
            await worker.process(job(ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value))

        log = datastore.logs[-1]
        assert log["status"] == "error"
        assert log["error"] == "erp timed out"

    async def test_unknown_job(self, worker):
        with pytest.raises(UnknownJobTypeError):
            await worker.process(job("sync-suppliers"))


@pytest.mark.unit
class TestLocking:
    async def test_same_entity_does_not_overlap(self, worker, client):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch(last_sync):
            started.set()
            await release.wait()
            return []

        client.fetch_products_delta = AsyncMock(side_effect=slow_fetch)
        first = asyncio.create_task(worker.sync_products_delta())
        await started.wait()

        with pytest.raises(LockUnavailableError):
            await worker.process(job(ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value))
        await worker.sync_customers_delta()

        release.set()
        assert (await first)["processed"] == 0
        assert client.fetch_products_delta.await_count == 1

    async def test_lock_released_on_failure(self, worker, client, erp_lock):
        client.fetch_sales_delta.side_effect = UpstreamTimeoutError("erp timed out")

        with pytest.raises(UpstreamTimeoutError):
            await worker.sync_sales_delta()

        assert await erp_lock.is_locked(f"erp-catalog:{ErpCatalogJobType.SYNC_SALES_DELTA.value}") is False
