"""
Stock Threshold Evaluation and Routing

Every processed stock item is checked against its minimum:
- quantity <= minimum  -> "stock-critical" notification job (HIGH)
- quantity == 0        -> additionally an "alert-zero-stock" job on the
                          critical-stock queue (CRITICAL, highest priority)

Routing goes through the queues so alert delivery is retried on its own
schedule and never delays or fails the sync that detected it.
"""

from dataclasses import asdict, dataclass
from typing import Any

from src.core.config.constants import (
    PRIORITY_STOCK_ALERT,
    PRIORITY_ZERO_STOCK,
    CRITICAL_RETRIES,
    ErpStockJobType,
    QueueName,
    Stage,
    StockStatus,
)
from src.core.logging.logger import get_logger
from src.core.models.stock import StockEntry, StockRecord

logger = get_logger(__name__)

NOTIFY_STOCK_CRITICAL = "stock-critical"
STOCK_ALERT_ATTEMPTS = 3


@dataclass(frozen=True)
class StockEvent:
    """A stock item that crossed a threshold."""

    product_id: str
    quantity: float
    location: str | None = None
    sku: str | None = None
    location_name: str | None = None

    def to_job_data(self) -> dict[str, Any]:
        return asdict(self)


def evaluate_records(records: list[StockRecord]) -> tuple[list[StockEvent], list[StockEvent]]:
    """
    Split processed POS records into (critical, zero) events.

    ``no_data`` records never alert.
    """
    critical: list[StockEvent] = []
    zero: list[StockEvent] = []
    for record in records:
        if not record.needs_alert:
            continue
        event = StockEvent(
            product_id=record.product_id,
            quantity=record.quantity,
            location=record.store_id,
            location_name=record.store_name,
        )
        critical.append(event)
        if record.status == StockStatus.OUT_OF_STOCK and record.quantity == 0:
            zero.append(event)
    return critical, zero


def evaluate_entries(
    entries: list[StockEntry], skus: dict[str, str | None] | None = None
) -> tuple[list[StockEvent], list[StockEvent]]:
    """Split ERP stock entries into (critical, zero) events."""
    skus = skus or {}
    critical: list[StockEvent] = []
    zero: list[StockEvent] = []
    for entry in entries:
        if not entry.is_critical:
            continue
        event = StockEvent(
            product_id=entry.product_id,
            quantity=entry.quantity,
            location=entry.warehouse,
            sku=skus.get(entry.product_id),
        )
        critical.append(event)
        if entry.quantity == 0:
            zero.append(event)
    return critical, zero


class StockAlertRouter:
    """Enqueues threshold events as alert jobs."""

    def __init__(self, queues, critical_delay: float = 0.0, zero_delay: float = 0.0):
        self._queues = queues
        self.critical_delay = critical_delay
        self.zero_delay = zero_delay

    async def route(self, critical: list[StockEvent], zero: list[StockEvent]) -> dict[str, int]:
        for event in critical:
            await self._queues.add(
                QueueName.NOTIFICATION.value,
                NOTIFY_STOCK_CRITICAL,
                event.to_job_data(),
                priority=PRIORITY_STOCK_ALERT,
                attempts=STOCK_ALERT_ATTEMPTS,
                delay=self.critical_delay,
            )
        if critical:
            logger.warning("Queued critical stock alerts", stage=Stage.SYNC.value, count=len(critical))

        for event in zero:
            await self._queues.add(
                QueueName.CRITICAL_STOCK.value,
                ErpStockJobType.ALERT_ZERO_STOCK.value,
                event.to_job_data(),
                priority=PRIORITY_ZERO_STOCK,
                attempts=CRITICAL_RETRIES,
                delay=self.zero_delay,
            )
        if zero:
            logger.error("Queued zero stock alerts", stage=Stage.SYNC.value, count=len(zero))

        return {"critical_alerts": len(critical), "zero_stock_alerts": len(zero)}
