"""
Unit Tests for ErpStockWorker
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.config.constants import AlertSeverity, ErpStockJobType, QueueName
from src.core.exceptions import LockUnavailableError, UnknownJobTypeError, UpstreamServerError
from src.core.interfaces.datastore import TABLE_STOCK
from src.infrastructure.cache.cache_manager import CacheManager
from src.infrastructure.cache.stock_cache import StockCache
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.queue.job import Job
from src.integrations.erp_stock_client import ErpStockClient
from src.integrations.models import ErpStockItem
from src.sync.erp_stock_worker import DELTA_LOCK_RESOURCE, ErpStockWorker, parse_timestamp
from src.sync.thresholds import StockAlertRouter


def job(name, data=None, queue=QueueName.STOCK_SYNC.value):
    return Job(id=f"{name}-1", queue=queue, name=name, data=data or {}, created_at=0)


@pytest.fixture
def client():
    return MagicMock(spec=ErpStockClient)


@pytest.fixture
def stock_cache(cache_manager: CacheManager):
    return StockCache(cache_manager)


@pytest.fixture
def erp_lock(store):
    return DistributedLock(store)


@pytest.fixture
def worker(client, datastore, stock_cache, queues, alert_manager, erp_lock):
    return ErpStockWorker(client, datastore, stock_cache, StockAlertRouter(queues), alert_manager, erp_lock)


@pytest.mark.unit
class TestParseTimestamp:
    def test_parses_zulu(self):
        assert parse_timestamp("2025-01-01T10:00:00Z") == datetime(2025, 1, 1, 10, tzinfo=timezone.utc)

    def test_passes_through(self):
        now = datetime.now(timezone.utc)
        assert parse_timestamp(now) is now
        assert parse_timestamp(None) is None


@pytest.mark.unit
class TestStockDelta:
    async def test_upserts_caches_and_routes(self, worker, client, datastore, stock_cache, queues):
        client.fetch_stock_delta = AsyncMock(return_value=[
            ErpStockItem(product_id="P-1", quantity=40, minimum_quantity=10),
            ErpStockItem(product_id="P-2", quantity=5, minimum_quantity=10, sku="SKU-2"),
            ErpStockItem(product_id="P-3", quantity=0, minimum_quantity=10),
        ])

        stats = await worker.process(job(ErpStockJobType.SYNC_STOCK_DELTA.value))

        assert stats["processed"] == 3
        assert stats["critical_count"] == 2
        assert stats["zero_stock_count"] == 1
        assert len(datastore.rows(TABLE_STOCK)) == 3
        assert (await stock_cache.get("P-1")).quantity == 40
        assert (await queues.get(QueueName.CRITICAL_STOCK.value).counts())["waiting"] == 1
        assert datastore.logs[-1]["status"] == "success"

    async def test_uses_last_logged_sync_when_job_has_none(self, worker, client, datastore):
        client.fetch_stock_delta = AsyncMock(return_value=[])
        await datastore.append_integration_log("erp", ErpStockJobType.SYNC_STOCK_DELTA.value, "success")
        logged_at = datastore.logs[-1]["created_at"]

        await worker.process(job(ErpStockJobType.SYNC_STOCK_DELTA.value))

        client.fetch_stock_delta.assert_awaited_once_with(logged_at)

    async def test_job_timestamp_wins(self, worker, client):
        client.fetch_stock_delta = AsyncMock(return_value=[])

        await worker.process(job(ErpStockJobType.SYNC_STOCK_DELTA.value, {"last_sync": "2025-03-01T00:00:00+00:00"}))

        client.fetch_stock_delta.assert_awaited_once_with(datetime(2025, 3, 1, tzinfo=timezone.utc))

    async def test_empty_delta_logs_zero(self, worker, client, datastore):
        client.fetch_stock_delta = AsyncMock(return_value=[])

        stats = await worker.sync_stock_delta()

        assert stats["processed"] == 0
        assert datastore.upsert_calls == []
        assert datastore.logs[-1]["details"]["processed"] == 0

    async def test_replayed_delta_is_idempotent(self, worker, client, datastore):
        client.fetch_stock_delta = AsyncMock(return_value=[ErpStockItem(product_id="P-1", quantity=40)])

        await worker.sync_stock_delta()
        await worker.sync_stock_delta()

        assert len(datastore.rows(TABLE_STOCK)) == 1

    async def test_failure_is_logged_and_reraised(self, worker, client, datastore):
        client.fetch_stock_delta = AsyncMock(side_effect=UpstreamServerError("erp-stock responded 503"))

        with pytest.raises(UpstreamServerError):
            await worker.process(job(ErpStockJobType.SYNC_STOCK_DELTA.value))

        log = datastore.logs[-1]
        assert log["status"] == "error"
        assert log["entity_type"] == "stock-sync-stock-delta"
        assert "503" in log["error"]


@pytest.mark.unit
class TestDeltaLocking:
    async def test_concurrent_deltas_do_not_overlap(self, worker, client):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch(last_sync):
            started.set()
            await release.wait()
            return []

        client.fetch_stock_delta = AsyncMock(side_effect=slow_fetch)
        since = datetime(2025, 3, 1, tzinfo=timezone.utc)
        first = asyncio.create_task(worker.sync_stock_delta(since))
        await started.wait()

        with pytest.raises(LockUnavailableError):
            await worker.sync_stock_delta(since)

        release.set()
        assert (await first)["processed"] == 0
        assert client.fetch_stock_delta.await_count == 1

    async def test_locked_job_goes_back_without_error_log(self, worker, client, datastore, erp_lock):
        client.fetch_stock_delta = AsyncMock(return_value=[])
        await erp_lock.acquire(DELTA_LOCK_RESOURCE)

        with pytest.raises(LockUnavailableError):
            await worker.process(job(ErpStockJobType.SYNC_STOCK_DELTA.value))

        client.fetch_stock_delta.assert_not_awaited()
        assert datastore.logs == []

    async def test_lock_released_after_sync(self, worker, client, erp_lock):
        client.fetch_stock_delta = AsyncMock(return_value=[])

        await worker.sync_stock_delta()

        assert await erp_lock.is_locked(DELTA_LOCK_RESOURCE) is False


@pytest.mark.unit
class TestCriticalStock:
    async def test_flags_rows_and_uses_short_ttl(self, worker, client, datastore, cache_manager, stock_cache):
        client.fetch_critical_stock = AsyncMock(return_value=[ErpStockItem(product_id="P-1", quantity=3)])

        stats = await worker.process(
            job(ErpStockJobType.SYNC_CRITICAL_STOCK.value, {"threshold": 5}, queue=QueueName.CRITICAL_STOCK.value)
        )

        client.fetch_critical_stock.assert_awaited_once_with(5)
        assert stats["threshold"] == 5
        assert datastore.rows(TABLE_STOCK)[0]["critical"] is True
        assert await cache_manager.ttl(stock_cache.key("P-1")) == stock_cache.critical_ttl

    async def test_nothing_critical(self, worker, client, datastore):
        client.fetch_critical_stock = AsyncMock(return_value=[])

        assert (await worker.sync_critical_stock())["processed"] == 0
        assert datastore.upsert_calls == []

    async def test_does_not_route_zero_alerts(self, worker, client, queues):
        client.fetch_critical_stock = AsyncMock(return_value=[ErpStockItem(product_id="P-1", quantity=0)])

        await worker.sync_critical_stock()

        assert (await queues.get(QueueName.CRITICAL_STOCK.value).counts())["waiting"] == 0
        assert (await queues.get(QueueName.NOTIFICATION.value).counts())["waiting"] == 1


@pytest.mark.unit
class TestZeroStockAlert:
    async def test_alert_uses_product_details(self, worker, datastore, chat_channel, email_channel):
        datastore.products = [{"external_id": "P-1", "name": "Drill", "sku": "SKU-1"}]

        result = await worker.process(
            job(
                ErpStockJobType.ALERT_ZERO_STOCK.value,
                {"product_id": "P-1", "quantity": 0, "location": "01"},
                queue=QueueName.CRITICAL_STOCK.value,
            )
        )

        assert result == {"product_id": "P-1", "sent": True}
        alert = chat_channel.sent[0]
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.data["product_name"] == "Drill"
        assert alert.data["sku"] == "SKU-1"
        assert alert.resource_id == "01:P-1"
        assert len(email_channel.sent) == 1

    async def test_alert_sent_for_unknown_product(self, worker, chat_channel):
        result = await worker.alert_zero_stock({"product_id": "P-404", "quantity": 0})

        assert result["sent"] is True
        assert chat_channel.sent[0].data["product_name"] is None


@pytest.mark.unit
class TestPreloadPopular:
    async def test_preloads_cache(self, worker, client, datastore, stock_cache):
        datastore.products = [{"external_id": "P-1"}, {"external_id": "P-2"}, {"name": "no id"}]
        client.fetch_stock_batch = AsyncMock(return_value=[
            ErpStockItem(product_id="P-1", quantity=12),
            ErpStockItem(product_id="P-2", quantity=30),
        ])

        result = await worker.process(job(ErpStockJobType.PRELOAD_POPULAR.value))

        client.fetch_stock_batch.assert_awaited_once_with(["P-1", "P-2"])
        assert result == {"preloaded": 2}
        assert (await stock_cache.get("P-2")).quantity == 30

    async def test_nothing_to_preload(self, worker, client):
        client.fetch_stock_batch = AsyncMock()

        assert await worker.preload_popular() == {"preloaded": 0}
        client.fetch_stock_batch.assert_not_called()


@pytest.mark.unit
async def test_unknown_job_name(worker, datastore):
    with pytest.raises(UnknownJobTypeError):
        await worker.process(job("rebuild-everything"))

    assert datastore.logs[-1]["status"] == "error"
