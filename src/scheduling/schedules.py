"""
Timer Catalog

Declares every timer the worker runs and the manual sync trigger.

ERP timers                          POS timers (one job per store)
    */2 * * * *   stock delta           */15 * * * *  stock sync
    * * * * *     critical stock        0 */2 * * *   incremental sync
    */30 * * * *  products delta        0 */6 * * *   product sync
    0 * * * *     customers delta       0 3 * * *     full sync
    */10 * * * *  sales delta           */10 * * * *  upstream health
    0 2 * * *     full sync             0 */4 * * *   cache warm-up
    0 */6 * * *   preload popular       */5 * * * *   sync error monitor
                                        0 * * * *     status cleanup
Shared:                                 */30 * * * *  metrics
    */5 * * * *   queue monitor
    0 */6 * * *   job cleanup

Delta jobs carry no timestamp: the worker reads the last successful sync from
the integration log when it runs, so a job that waited in the queue still
picks up everything.
"""

from typing import Any

from src.core.config.constants import (
    CRITICAL_RETRIES,
    CRITICAL_STOCK_THRESHOLD,
    MANUAL_TRIGGER_PRIORITIES,
    PRIORITY_CRITICAL_STOCK,
    PRIORITY_STOCK_DELTA,
    BackoffType,
    ErpCatalogJobType,
    ErpStockJobType,
    QueueName,
    Stage,
    SyncJobType,
    TriggerPriority,
)
from src.core.logging.logger import get_logger
from src.core.models.sync import SyncJob, SyncJobOptions
from src.infrastructure.queue.job import BackoffSpec, Job

from .maintenance import MaintenanceTasks
from .scheduler import TimerDefinition

logger = get_logger(__name__)


def _enqueue(queues, queue_name: str, job_name: str, data: dict[str, Any], **options):
    async def task() -> Job:
        job = await queues.add(queue_name, job_name, data, **options)
        logger.info("Scheduled job enqueued", stage=Stage.SCHEDULER.value, queue=queue_name, job_name=job_name, job_id=job.id)
        return job

    return task


def erp_timers(queues) -> list[TimerDefinition]:
    stock, erp, critical = QueueName.STOCK_SYNC.value, QueueName.ERP_SYNC.value, QueueName.CRITICAL_STOCK.value
    return [
        TimerDefinition(
            "erp-stock-delta",
            _enqueue(queues, stock, ErpStockJobType.SYNC_STOCK_DELTA.value, {}, priority=PRIORITY_STOCK_DELTA, attempts=5),
            cron="*/2 * * * *",
            description="ERP stock delta every 2 minutes",
        ),
        TimerDefinition(
            "erp-critical-stock",
            _enqueue(
                queues, critical, ErpStockJobType.SYNC_CRITICAL_STOCK.value,
                {"threshold": CRITICAL_STOCK_THRESHOLD}, priority=PRIORITY_CRITICAL_STOCK, attempts=CRITICAL_RETRIES,
            ),
            cron="* * * * *",
            description="ERP critical stock every minute",
        ),
        TimerDefinition(
            "erp-products",
            _enqueue(queues, erp, ErpCatalogJobType.SYNC_PRODUCTS_DELTA.value, {}, priority=5, attempts=3),
            cron="*/30 * * * *",
            description="ERP products delta every 30 minutes",
        ),
        TimerDefinition(
            "erp-customers",
            _enqueue(queues, erp, ErpCatalogJobType.SYNC_CUSTOMERS_DELTA.value, {}, priority=3, attempts=3),
            cron="0 * * * *",
            description="ERP customers delta hourly",
        ),
        TimerDefinition(
            "erp-sales",
            _enqueue(queues, erp, ErpCatalogJobType.SYNC_SALES_DELTA.value, {}, priority=4, attempts=3),
            cron="*/10 * * * *",
            description="ERP sales delta every 10 minutes",
        ),
        TimerDefinition(
            "erp-full-sync",
            _enqueue(queues, erp, ErpCatalogJobType.FULL_SYNC.value, {"force": True}, priority=1, attempts=5, delay=5.0),
            cron="0 2 * * *",
            description="ERP full sync daily at 02:00",
        ),
        TimerDefinition(
            "erp-preload-popular",
            _enqueue(queues, stock, ErpStockJobType.PRELOAD_POPULAR.value, {}, priority=1, attempts=2),
            cron="0 */6 * * *",
            description="Popular product stock preload every 6 hours",
        ),
    ]


def _store_jobs(queues, store_ids: list[str], job_type: SyncJobType, options: SyncJobOptions, **queue_options):
    async def task() -> list[Job]:
        jobs = []
        for store_id in store_ids:
            sync_job = SyncJob(type=job_type, resource_id=store_id, options=options)
            jobs.append(
                await queues.add(QueueName.POS_SYNC.value, job_type.value, sync_job.model_dump(mode="json"), **queue_options)
            )
        logger.info("Store sync jobs enqueued", stage=Stage.SCHEDULER.value, job_type=job_type.value, stores=len(jobs))
        return jobs

    return task


def pos_timers(queues, store_ids: list[str]) -> list[TimerDefinition]:
    def exponential(seconds: float) -> BackoffSpec:
        return BackoffSpec(type=BackoffType.EXPONENTIAL, delay=seconds)

    return [
        TimerDefinition(
            "pos-stock-sync",
            _store_jobs(
                queues, store_ids, SyncJobType.STOCK_SYNC, SyncJobOptions(batch_size=100),
                priority=15, attempts=5, backoff=exponential(5.0),
            ),
            cron="*/15 * * * *",
            description="POS stock sync every 15 minutes",
        ),
        TimerDefinition(
            "pos-incremental-sync",
            _store_jobs(
                queues, store_ids, SyncJobType.INCREMENTAL_SYNC, SyncJobOptions(batch_size=200),
                priority=10, attempts=3, backoff=exponential(10.0),
            ),
            cron="0 */2 * * *",
            description="POS incremental sync every 2 hours",
        ),
        TimerDefinition(
            "pos-product-sync",
            _store_jobs(
                queues, store_ids, SyncJobType.PRODUCT_SYNC, SyncJobOptions(batch_size=500),
                priority=8, attempts=3, backoff=exponential(15.0),
            ),
            cron="0 */6 * * *",
            description="POS product sync every 6 hours",
        ),
        TimerDefinition(
            "pos-full-sync",
            _store_jobs(
                queues, store_ids, SyncJobType.FULL_SYNC, SyncJobOptions(batch_size=500, force=True),
                priority=5, attempts=5, backoff=exponential(30.0), delay=10.0,
            ),
            cron="0 3 * * *",
            description="POS full sync daily at 03:00",
        ),
    ]


def maintenance_timers(tasks: MaintenanceTasks) -> list[TimerDefinition]:
    return [
        TimerDefinition("upstream-health", tasks.check_upstreams, cron="*/10 * * * *",
                        description="Upstream health checks every 10 minutes"),
        TimerDefinition("pos-cache-warmup", tasks.warm_up_cache, cron="0 */4 * * *",
                        description="POS stock cache warm-up every 4 hours"),
        TimerDefinition("sync-error-monitor", tasks.monitor_sync_errors, cron="*/5 * * * *",
                        description="Sync error-rate monitor every 5 minutes"),
        TimerDefinition("sync-status-cleanup", tasks.cleanup_sync_status, cron="0 * * * *",
                        description="Stale sync status cleanup hourly"),
        TimerDefinition("metrics-collection", tasks.collect_metrics, cron="*/30 * * * *",
                        description="Metrics collection every 30 minutes"),
        TimerDefinition("queue-monitor", tasks.monitor_queues, cron="*/5 * * * *",
                        description="Queue backlog and failure monitor every 5 minutes"),
        TimerDefinition("queue-cleanup", tasks.clean_queues, cron="0 */6 * * *",
                        description="Completed/failed job eviction every 6 hours"),
    ]


class ManualSyncTrigger:
    """
    Administrative store syncs outside the timers.

    Usage:
        trigger = ManualSyncTrigger(queues, default_store="621769196001438846")
        job = await trigger.trigger_manual_sync(SyncJobType.FULL_SYNC, TriggerPriority.HIGH)
    """

    def __init__(self, queues, default_store: str | None = None):
        self._queues = queues
        self.default_store = default_store

    async def trigger_manual_sync(
        self,
        job_type: SyncJobType,
        priority: TriggerPriority = TriggerPriority.MEDIUM,
        store_id: str | None = None,
        options: SyncJobOptions | None = None,
    ) -> Job:
        store_id = store_id or self.default_store
        if options is None:
            options = SyncJobOptions(batch_size=500 if job_type == SyncJobType.FULL_SYNC else 200, force=True)
        numeric = MANUAL_TRIGGER_PRIORITIES[TriggerPriority(priority)]
        sync_job = SyncJob(type=job_type, resource_id=store_id, priority=numeric, options=options)

        job = await self._queues.add(
            QueueName.POS_SYNC.value,
            job_type.value,
            sync_job.model_dump(mode="json"),
            priority=numeric,
            attempts=5,
            backoff=BackoffSpec(type=BackoffType.EXPONENTIAL, delay=5.0),
        )
        logger.info(
            "Manual sync triggered",
            stage=Stage.SCHEDULER.value,
            job_type=job_type.value,
            priority=TriggerPriority(priority).value,
            store_id=store_id,
            job_id=job.id,
        )
        return job
