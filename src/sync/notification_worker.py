"""
Notification Worker

Processes ``notification`` jobs by handing them to the AlertManager.

Job names map one-to-one onto alert builders. Channel failures are already
absorbed by the AlertManager, so a notification job only fails when the job
data itself is unusable or the audit write raises.
"""

from typing import Any

from src.core.config.constants import Stage
from src.core.exceptions import UnknownJobTypeError
from src.core.logging.logger import get_logger
from src.infrastructure.queue.job import Job

from .thresholds import NOTIFY_STOCK_CRITICAL

logger = get_logger(__name__)

NOTIFY_STOCK_ZERO = "stock-zero"
NOTIFY_UPSTREAM_OFFLINE = "upstream-offline"
NOTIFY_QUEUE_BACKLOG = "queue-backlog"
NOTIFY_QUEUE_FAILURE = "queue-failure"
NOTIFY_HEALTH = "health"
NOTIFY_SYNC = "sync"


class NotificationWorker:
    def __init__(self, alerts):
        self._alerts = alerts

    async def process(self, job: Job) -> dict[str, Any]:
        data = job.data
        logger.info("Processing notification", stage=Stage.ALERT.value, notification=job.name)

        if job.name in (NOTIFY_STOCK_CRITICAL, NOTIFY_STOCK_ZERO):
            location = data.get("location")
            product_id = data["product_id"]
            sent = await self._alerts.create_stock_alert(
                zero=job.name == NOTIFY_STOCK_ZERO,
                product_id=product_id,
                quantity=data.get("quantity", 0),
                sku=data.get("sku"),
                location=data.get("location_name") or location,
                product_name=data.get("product_name"),
                resource_id=f"{location}:{product_id}" if location else product_id,
            )
        elif job.name == NOTIFY_UPSTREAM_OFFLINE:
            sent = await self._alerts.create_upstream_offline_alert(
                data.get("integration", "unknown"), data.get("duration_seconds", 0)
            )
        elif job.name == NOTIFY_QUEUE_BACKLOG:
            sent = await self._alerts.create_queue_backlog_alert(
                data.get("queue", "unknown"), data.get("backlog", 0)
            )
        elif job.name == NOTIFY_QUEUE_FAILURE:
            sent = await self._alerts.create_queue_failure_alert(
                data.get("queue", "unknown"), data.get("failed_count", 0)
            )
        elif job.name == NOTIFY_HEALTH:
            sent = await self._alerts.create_health_alert(
                data.get("service", "unknown"), data.get("status", "unhealthy"), data.get("data")
            )
        elif job.name == NOTIFY_SYNC:
            sent = await self._alerts.create_sync_alert(
                data.get("service", "unknown"), data.get("alert_type", "unknown"), data.get("data")
            )
        else:
            raise UnknownJobTypeError(
                f"Unknown notification type: {job.name}", job_id=job.id, details={"queue": job.queue}
            )

        logger.info("Notification processed", stage=Stage.ALERT.value, notification=job.name, sent=sent)
        return {"notification": job.name, "sent": sent}
