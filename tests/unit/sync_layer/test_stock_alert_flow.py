"""
Stock Alert Flow

A POS product re-synced at 15, then 5, then 0 (minimum 10): the low-stock
alert is sent once, and the out-of-stock alert escalates to CRITICAL on
both channels while the repeated low-stock alert is suppressed.
"""

from unittest.mock import MagicMock

import pytest

from src.core.config.constants import AlertType, QueueName, SyncJobType
from src.core.models.sync import SyncJob
from src.infrastructure.cache.stock_cache import StockCache
from src.infrastructure.cache.sync_status_cache import SyncStatusCache
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.queue.job import Job
from src.infrastructure.queue.registry import ProcessorRegistry
from src.integrations.erp_stock_client import ErpStockClient
from src.sync import (
    ErpStockWorker,
    NotificationWorker,
    ResourceSyncWorker,
    StockAlertRouter,
    register_processors,
)
from tests.test_fixtures.pos_factory import ScriptedPosClient

STORE = "store-1"


@pytest.fixture
def pos():
    return ScriptedPosClient(products=["P-1"])


@pytest.fixture
def processors(pos, datastore, cache_manager, store, queues, alert_manager):
    datastore.products = [{"external_id": "P-1", "name": "Drill", "sku": "SKU-1"}]
    router = StockAlertRouter(queues)
    resource = ResourceSyncWorker(
        pos,
        datastore,
        SyncStatusCache(cache_manager),
        ResourceSyncWorker.create_lock(store),
        router,
        product_page_delay=0,
        stock_batch_delay=0,
    )
    erp_stock = ErpStockWorker(
        MagicMock(spec=ErpStockClient),
        datastore,
        StockCache(cache_manager),
        router,
        alert_manager,
        DistributedLock(store),
    )
    return register_processors(
        ProcessorRegistry(), resource, erp_stock, MagicMock(), NotificationWorker(alert_manager)
    )


async def drain(queues, processors) -> None:
    for name in (QueueName.CRITICAL_STOCK.value, QueueName.NOTIFICATION.value):
        queue = queues.get(name)
        job = await queue.fetch_next()
        while job is not None:
            result = await processors.get(name)(job)
            await queue.complete(job, result)
            job = await queue.fetch_next()


async def sync_stock_at(quantity, pos, processors, queues) -> None:
    pos.set_stock("P-1", quantity, 10)
    payload = SyncJob(type=SyncJobType.STOCK_SYNC, resource_id=STORE)
    job = Job(
        id=f"stock-{quantity}",
        queue=QueueName.POS_SYNC.value,
        name=payload.type.value,
        data=payload.model_dump(mode="json"),
        created_at=0,
    )
    await processors.get(QueueName.POS_SYNC.value)(job)
    await drain(queues, processors)


@pytest.mark.unit
class TestStockAlertFlow:
    async def test_low_then_zero(self, pos, processors, queues, chat_channel, email_channel, datastore):
        await sync_stock_at(15, pos, processors, queues)
        assert chat_channel.sent == []

        await sync_stock_at(5, pos, processors, queues)
        assert chat_channel.severities() == ["HIGH"]
        assert chat_channel.sent[0].type == AlertType.CRITICAL_STOCK

        await sync_stock_at(0, pos, processors, queues)
        assert chat_channel.severities() == ["HIGH", "CRITICAL"]
        assert email_channel.severities() == ["HIGH", "CRITICAL"]
        zero_alert = chat_channel.sent[-1]
        assert zero_alert.type == AlertType.ZERO_STOCK
        assert zero_alert.data["product_name"] == "Drill"
        assert zero_alert.resource_id == f"{STORE}:P-1"

        assert [a["severity"] for a in datastore.alerts] == ["HIGH", "CRITICAL"]

    async def test_staying_at_zero_does_not_repeat(self, pos, processors, queues, chat_channel):
        await sync_stock_at(0, pos, processors, queues)
        await sync_stock_at(0, pos, processors, queues)

        assert sorted(chat_channel.severities()) == ["CRITICAL", "HIGH"]

    async def test_window_expiry_allows_repeat(self, pos, processors, queues, chat_channel, clock):
        await sync_stock_at(5, pos, processors, queues)
        clock.advance(3601)
        await sync_stock_at(5, pos, processors, queues)

        assert chat_channel.severities() == ["HIGH", "HIGH"]
