"""
Maintenance Tasks

Periodic housekeeping run by scheduler timers:
- Upstream health checks (offline alerts with outage duration)
- Cache warm-up of POS stock for each store's known products
- Sync error-rate monitoring per store
- Stale sync-status cleanup (error counter reset after a quiet period)
- Metrics collection (queue depth, circuit breaker state)
- Queue backlog and failure monitoring
- Completed/failed job eviction

Alerts raised here go straight to the AlertManager: there is no job to retry
and the AlertManager never raises on channel failure.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any

from src.core.config.constants import (
    POPULAR_PRODUCTS_LIMIT,
    QueueName,
    Stage,
    SYNC_ERROR_ALERT_THRESHOLD,
    SYNC_STATUS_QUIET_PERIOD_HOURS,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

QUEUE_WARN_BACKLOG = 100
QUEUE_WARN_FAILED = 10


class MaintenanceTasks:
    """
    Args:
        queues: QueueRegistry
        alerts: AlertManager
        health: HealthChecker initialized with the integration clients
        status_cache: SyncStatusCache
        datastore: CentralDatastore
        pos_client: RetailPosClient used for cache warm-up
        store_ids: POS stores to watch
        breakers: CircuitBreakerManager
        metrics: MetricsCollector (optional)
    """

    def __init__(
        self,
        queues,
        alerts,
        health,
        status_cache,
        datastore,
        pos_client=None,
        store_ids: list[str] | None = None,
        breakers=None,
        metrics=None,
        backlog_threshold: int = 1000,
        pos_backlog_threshold: int = 500,
        failed_threshold: int = 50,
        clock=time.monotonic,
    ):
        self._queues = queues
        self._alerts = alerts
        self._health = health
        self._status = status_cache
        self._datastore = datastore
        self._pos = pos_client
        self.store_ids = list(store_ids or [])
        self._breakers = breakers
        self._metrics = metrics
        self.backlog_threshold = backlog_threshold
        self.pos_backlog_threshold = pos_backlog_threshold
        self.failed_threshold = failed_threshold
        self._clock = clock
        self._offline_since: dict[str, float] = {}

    async def check_upstreams(self) -> dict[str, bool]:
        """Probe every integration; an offline one raises an alert carrying its outage length."""
        results = await self._health.check_integrations()
        now = self._clock()
        for name, healthy in results.items():
            if healthy:
                if self._offline_since.pop(name, None) is not None:
                    logger.info("Upstream back online", stage=Stage.SCHEDULER.value, integration=name)
                continue
            since = self._offline_since.setdefault(name, now)
            logger.warning("Upstream health check failed", stage=Stage.SCHEDULER.value, integration=name)
            await self._alerts.create_upstream_offline_alert(name, now - since)

        if self._datastore is not None and not await self._datastore.health_check():
            await self._alerts.create_health_alert(
                "datastore", "unhealthy", {"message": "Central datastore is not responding"}
            )
        return results

    async def warm_up_cache(self, limit: int = POPULAR_PRODUCTS_LIMIT) -> dict[str, int]:
        """Fetch stock for each store's first ``limit`` known products; the client caches it."""
        warmed: dict[str, int] = {}
        if self._pos is None:
            return warmed
        for store_id in self.store_ids:
            products = await self._datastore.list_products(store_id)
            sids = [p["external_id"] for p in products[:limit] if p.get("external_id")]
            if not sids:
                warmed[store_id] = 0
                continue
            result = await self._pos.get_products_stock_batch(sids, store_id)
            warmed[store_id] = len(result.success)
            logger.info(
                "Cache warmed up", stage=Stage.SCHEDULER.value, store_id=store_id,
                products=len(sids), cached=len(result.success),
            )
        return warmed

    async def monitor_sync_errors(self, threshold: int = SYNC_ERROR_ALERT_THRESHOLD) -> list[str]:
        """Stores whose error counter is above ``threshold`` get a HIGH sync alert."""
        flagged = []
        for store_id in self.store_ids:
            status = await self._status.get_or_create(store_id)
            if status.error_count > threshold:
                flagged.append(store_id)
                await self._alerts.create_sync_alert(
                    "retail-pos",
                    "high_error_rate",
                    {
                        "store_id": store_id,
                        "error_count": status.error_count,
                        "message": f"High error rate detected: {status.error_count} errors",
                    },
                )
        return flagged

    async def cleanup_sync_status(self, quiet_hours: int = SYNC_STATUS_QUIET_PERIOD_HOURS) -> list[str]:
        """Reset error counters of stores whose last sync is older than ``quiet_hours``."""
        reset = []
        cutoff = datetime.now(timezone.utc) - timedelta(hours=quiet_hours)
        for store_id in self.store_ids:
            status = await self._status.get_or_create(store_id)
            if status.error_count > 0 and status.last_sync is not None and status.last_sync < cutoff:
                await self._status.reset_errors(store_id)
                reset.append(store_id)
                logger.info("Reset sync error count", stage=Stage.SCHEDULER.value, store_id=store_id)
        return reset

    async def collect_metrics(self) -> dict[str, Any]:
        """Refresh queue depth gauges and snapshot breaker and sync state."""
        snapshot: dict[str, Any] = {
            "queues": await self._queues.get_queue_stats(),
            "sync_status": {
                store_id: (await self._status.get_or_create(store_id)).model_dump(mode="json")
                for store_id in self.store_ids
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if self._breakers is not None:
            snapshot["circuit_breakers"] = self._breakers.get_all_stats()
        logger.debug("Metrics collected", stage=Stage.METRICS.value, **snapshot)
        return snapshot

    async def monitor_queues(self) -> dict[str, dict[str, int]]:
        """Backlog (waiting + active) and failure thresholds per queue."""
        stats = await self._queues.get_queue_stats()
        for name, counts in stats.items():
            backlog = counts.get("waiting", 0) + counts.get("active", 0)
            failed = counts.get("failed", 0)
            limit = self.pos_backlog_threshold if name == QueueName.POS_SYNC.value else self.backlog_threshold

            if backlog > limit:
                await self._alerts.create_queue_backlog_alert(name, backlog)
            if failed > self.failed_threshold:
                await self._alerts.create_queue_failure_alert(name, failed)
            if backlog > QUEUE_WARN_BACKLOG or failed > QUEUE_WARN_FAILED:
                logger.warning("Queue stats", stage=Stage.QUEUE.value, queue=name, **counts)
        return stats

    async def clean_queues(self) -> dict[str, int]:
        return await self._queues.clean_queues()
