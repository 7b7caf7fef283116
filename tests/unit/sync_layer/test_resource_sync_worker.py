"""
Unit Tests for ResourceSyncWorker

Covers lock handling, status transitions, idempotent upserts, pagination and
the error path (status, error counter, integration log).
"""

import pytest

from src.core.config.constants import QueueName, StockStatus, SyncJobType, SyncStatusState
from src.core.exceptions import LockUnavailableError, StockSyncError, UpstreamServerError
from src.core.interfaces.datastore import TABLE_POS_PRODUCTS, TABLE_POS_STOCK
from src.core.models.sync import SyncJob, SyncJobOptions
from src.infrastructure.cache.sync_status_cache import SyncStatusCache
from src.infrastructure.queue.job import Job
from src.sync.resource_sync_worker import MAX_CONSECUTIVE_PAGE_FAILURES, ResourceSyncWorker, chunked
from src.sync.thresholds import StockAlertRouter
from tests.test_fixtures.pos_factory import BrokenPosClient, ScriptedPosClient

STORE = "store-1"


def sync_job(job_type: SyncJobType, **options) -> Job:
    payload = SyncJob(type=job_type, resource_id=STORE, options=SyncJobOptions(**options))
    return Job(
        id=f"{job_type.value}-1",
        queue=QueueName.POS_SYNC.value,
        name=job_type.value,
        data=payload.model_dump(mode="json"),
        created_at=0,
    )


@pytest.fixture
def status_cache(cache_manager):
    return SyncStatusCache(cache_manager)


@pytest.fixture
def lock(store):
    return ResourceSyncWorker.create_lock(store)


@pytest.fixture
def pos():
    client = ScriptedPosClient(products=["A", "B", "C"])
    client.set_stock("A", 40, 10)
    client.set_stock("B", 4, 10)
    client.set_stock("C", 0, 10)
    return client


@pytest.fixture
def datastore_with_products(datastore):
    datastore.products = [{"external_id": sid} for sid in ("A", "B", "C")]
    return datastore


@pytest.fixture
def worker(pos, datastore_with_products, status_cache, lock, queues):
    return ResourceSyncWorker(
        pos,
        datastore_with_products,
        status_cache,
        lock,
        StockAlertRouter(queues),
        product_page_delay=0,
        stock_batch_delay=0,
    )


@pytest.mark.unit
class TestHelpers:
    def test_chunked(self):
        assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
        assert chunked([], 3) == []


@pytest.mark.unit
class TestLocking:
    async def test_lock_held_leaves_status_unchanged(self, worker, lock, status_cache):
        await status_cache.update(STORE, status=SyncStatusState.COMPLETED, error_count=2)
        await lock.acquire(STORE)

        with pytest.raises(LockUnavailableError):
            await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        status = await status_cache.get(STORE)
        assert status.status == SyncStatusState.COMPLETED
        assert status.error_count == 2

    async def test_lock_released_after_success(self, worker, lock):
        await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        assert await lock.is_locked(STORE) is False

    async def test_lock_released_after_failure(self, datastore, status_cache, lock, queues):
        worker = ResourceSyncWorker(
            BrokenPosClient(), datastore, status_cache, lock, StockAlertRouter(queues), product_page_delay=0
        )

        with pytest.raises(StockSyncError):
            await worker.process(sync_job(SyncJobType.PRODUCT_SYNC))

        assert await lock.is_locked(STORE) is False


@pytest.mark.unit
class TestStockSync:
    async def test_classifies_and_upserts(self, worker, datastore_with_products, status_cache):
        result = await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        rows = {r["product_id"]: r for r in datastore_with_products.rows(TABLE_POS_STOCK)}
        assert rows["A"]["status"] == StockStatus.IN_STOCK.value
        assert rows["B"]["status"] == StockStatus.LOW_STOCK.value
        assert rows["C"]["status"] == StockStatus.OUT_OF_STOCK.value
        assert result["stats"]["processed"] == 3
        assert result["stats"]["critical_alerts"] == 2
        assert result["stats"]["zero_stock_alerts"] == 1

        status = await status_cache.get(STORE)
        assert status.status == SyncStatusState.COMPLETED
        assert status.stock_synced == 3
        assert status.last_stock_sync is not None
        assert status.last_product_sync is None

    async def test_replay_is_idempotent(self, worker, datastore_with_products):
        await worker.process(sync_job(SyncJobType.STOCK_SYNC))
        first = datastore_with_products.rows(TABLE_POS_STOCK)
        await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        assert len(datastore_with_products.rows(TABLE_POS_STOCK)) == len(first) == 3

    async def test_routes_alerts(self, worker, queues):
        await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        notification = await queues.get(QueueName.NOTIFICATION.value).counts()
        critical = await queues.get(QueueName.CRITICAL_STOCK.value).counts()
        assert notification["waiting"] == 2
        assert critical["waiting"] == 1

    async def test_batches_by_batch_size(self, worker, pos):
        await worker.process(sync_job(SyncJobType.STOCK_SYNC, batch_size=2))

        assert pos.batch_calls == [["A", "B"], ["C"]]

    async def test_failed_products_are_counted(self, worker, pos, datastore_with_products):
        pos.failing_stock.add("B")

        result = await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        assert result["stats"]["errors"] == 1
        assert result["stats"]["processed"] == 2

    async def test_store_without_products(self, worker, datastore_with_products, pos):
        datastore_with_products.products = []

        result = await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        assert result["stats"]["processed"] == 0
        assert pos.batch_calls == []

    async def test_writes_success_log(self, worker, datastore_with_products):
        await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        log = datastore_with_products.logs[-1]
        assert (log["source"], log["entity_type"], log["status"]) == ("pos", "stock-sync", "success")


@pytest.mark.unit
class TestProductSync:
    async def test_paginates_until_short_page(self, worker, pos, datastore_with_products, status_cache):
        result = await worker.process(sync_job(SyncJobType.PRODUCT_SYNC, batch_size=2))

        assert pos.page_calls == [(0, 2), (2, 2)]
        assert result["processed"] == 3
        assert len(datastore_with_products.rows(TABLE_POS_PRODUCTS)) == 3
        status = await status_cache.get(STORE)
        assert status.products_synced == 3
        assert status.last_product_sync is not None

    async def test_stops_on_empty_page(self, worker, pos):
        await worker.process(sync_job(SyncJobType.PRODUCT_SYNC, batch_size=3))

        assert pos.page_calls == [(0, 3), (3, 3)]

    async def test_respects_limit(self, worker, pos):
        pos.products = pos.products * 4

        result = await worker.process(sync_job(SyncJobType.PRODUCT_SYNC, batch_size=2, limit=4))

        assert result["processed"] == 4

    async def test_skips_a_failing_page(self, worker, pos):
        pos.failing_offsets.add(0)

        result = await worker.process(sync_job(SyncJobType.PRODUCT_SYNC, batch_size=2))

        assert result["errors"] == 1
        assert result["processed"] == 1

    async def test_consecutive_page_failures_propagate(self, worker, pos):
        pos.failing_offsets.update(range(0, 2 * MAX_CONSECUTIVE_PAGE_FAILURES, 2))

        with pytest.raises(UpstreamServerError):
            await worker.process(sync_job(SyncJobType.PRODUCT_SYNC, batch_size=2))

        assert len(pos.page_calls) == MAX_CONSECUTIVE_PAGE_FAILURES


@pytest.mark.unit
class TestFullAndIncremental:
    async def test_full_sync_runs_both(self, worker, datastore_with_products, status_cache):
        result = await worker.process(sync_job(SyncJobType.FULL_SYNC))

        assert result["type"] == SyncJobType.FULL_SYNC.value
        assert result["stats"]["products_processed"] == 3
        assert result["stats"]["stock_processed"] == 3
        status = await status_cache.get(STORE)
        assert status.last_product_sync is not None
        assert status.last_stock_sync is not None
        assert any(log["entity_type"] == "full-sync" for log in datastore_with_products.logs)

    async def test_incremental_without_history_runs_full(self, worker):
        result = await worker.process(sync_job(SyncJobType.INCREMENTAL_SYNC))

        assert result["type"] == SyncJobType.FULL_SYNC.value

    async def test_incremental_with_history_runs_stock(self, worker, pos):
        await worker.process(sync_job(SyncJobType.STOCK_SYNC))
        pos.page_calls.clear()

        result = await worker.process(sync_job(SyncJobType.INCREMENTAL_SYNC))

        assert result["type"] == SyncJobType.STOCK_SYNC.value
        assert pos.page_calls == []


@pytest.mark.unit
class TestErrorPath:
    async def test_failure_marks_error_and_logs(self, datastore, status_cache, lock, queues):
        worker = ResourceSyncWorker(
            BrokenPosClient(), datastore, status_cache, lock, StockAlertRouter(queues), product_page_delay=0
        )
        datastore.products = [{"external_id": "A"}]

        for _ in range(2):
            with pytest.raises(StockSyncError):
                await worker.process(sync_job(SyncJobType.STOCK_SYNC))

        status = await status_cache.get(STORE)
        assert status.status == SyncStatusState.ERROR
        assert status.error_count == 2
        log = datastore.logs[-1]
        assert log["status"] == "error"
        assert log["entity_type"] == f"stock_sync-{STORE}"
        assert log["error"] == "POS unreachable"
