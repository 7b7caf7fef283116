"""
Alert Manager

Architecture:
    AlertManager (Public API: send_alert + create_* builders)
        ├── AlertSuppressor (repeat window per type/resource/severity)
        ├── CentralDatastore (durable alert log)
        └── AlertChannel x N (chat for every alert, email for HIGH/CRITICAL)

Flow:
    1. Drop the alert if an identical (type, resource, severity) alert was sent
       within the suppression window
    2. Persist it to the alert log
    3. Fan out to the channels for its severity, concurrently

Architectural Decision: alerting never fails a job
- Persistence and every channel are best-effort and isolated from each other
- A critical item that stays critical is reported once per window, and a
  severity change (critical -> zero) is reported immediately

Author: System Architect
Date: 2025-12-15
"""

import asyncio
from typing import Any

from src.core.config.constants import (
    KEY_ALERT_SUPPRESS,
    QUEUE_BACKLOG_HIGH_THRESHOLD,
    QUEUE_FAILURE_CRITICAL_THRESHOLD,
    UPSTREAM_OFFLINE_CRITICAL_AFTER,
    AlertSeverity,
    AlertType,
    Stage,
)
from src.core.exceptions import AlertDispatchError, CacheError, DatastoreError
from src.core.interfaces.cache import KeyValueStore
from src.core.interfaces.datastore import CentralDatastore
from src.core.logging.logger import get_logger
from src.core.models.alert import Alert

from .channels import AlertChannel

logger = get_logger(__name__)


# =============================================================================
# ALERT BUILDERS
# =============================================================================


def build_stock_alert(
    zero: bool,
    product_id: str,
    quantity: float,
    sku: str | None = None,
    location: str | None = None,
    product_name: str | None = None,
    resource_id: str | None = None,
) -> Alert:
    lines = [
        f"• Product: {product_name or 'N/A'}",
        f"• SKU: {sku or 'N/A'}",
        f"• Location: {location or 'N/A'}",
        f"• Quantity: {quantity}",
    ]
    if zero:
        title = "🔴 OUT OF STOCK"
        message = "🔴 PRODUCT OUT OF STOCK!\n\n" + "\n".join(lines) + "\n\n⚠️ Online sales may be affected!"
    else:
        title = "⚠️ CRITICAL STOCK"
        message = "⚠️ LOW STOCK!\n\n" + "\n".join(lines) + "\n\n📦 Consider restocking soon."

    return Alert(
        type=AlertType.ZERO_STOCK if zero else AlertType.CRITICAL_STOCK,
        severity=AlertSeverity.CRITICAL if zero else AlertSeverity.HIGH,
        title=title,
        message=message,
        data={
            "product_id": product_id,
            "sku": sku,
            "location": location,
            "quantity": quantity,
            "product_name": product_name,
        },
        resource_id=resource_id or (f"{location}:{product_id}" if location else product_id),
    )


def build_upstream_offline_alert(integration: str, duration_seconds: float) -> Alert:
    return Alert(
        type=AlertType.UPSTREAM_OFFLINE,
        severity=(
            AlertSeverity.CRITICAL
            if duration_seconds > UPSTREAM_OFFLINE_CRITICAL_AFTER
            else AlertSeverity.HIGH
        ),
        title=f"🔌 {integration.upper()} API UNAVAILABLE",
        message=(
            f"{integration} has been offline for {round(duration_seconds)}s. "
            "Integrations may be delayed."
        ),
        data={"integration": integration, "duration_seconds": duration_seconds},
        resource_id=integration,
    )


def build_queue_backlog_alert(queue_name: str, backlog: int) -> Alert:
    return Alert(
        type=AlertType.QUEUE_BACKLOG,
        severity=AlertSeverity.HIGH if backlog > QUEUE_BACKLOG_HIGH_THRESHOLD else AlertSeverity.MEDIUM,
        title="📬 QUEUE BACKLOG",
        message=f"Queue {queue_name} has {backlog} pending jobs. Processing may be slow.",
        data={"queue": queue_name, "backlog": backlog},
        resource_id=queue_name,
    )


def build_health_alert(service: str, status: str, data: dict[str, Any] | None = None) -> Alert:
    return Alert(
        type=AlertType.HEALTH,
        severity=AlertSeverity.CRITICAL if status == "unhealthy" else AlertSeverity.HIGH,
        title=f"🏥 {service.upper()} HEALTH CHECK FAILED",
        message=f"Service {service} reported status: {status}",
        data={"service": service, "status": status, **(data or {})},
        resource_id=service,
    )


def build_sync_alert(service: str, alert_type: str, data: dict[str, Any] | None = None) -> Alert:
    return Alert(
        type=AlertType.SYNC,
        severity=AlertSeverity.HIGH if alert_type == "high_error_rate" else AlertSeverity.MEDIUM,
        title=f"🔄 SYNC ALERT: {service.upper()}",
        message=f"Sync issue detected for {service}: {alert_type}",
        data={"service": service, "alert_type": alert_type, **(data or {})},
        resource_id=service,
    )


def build_queue_failure_alert(queue_name: str, failed_count: int) -> Alert:
    return Alert(
        type=AlertType.QUEUE_FAILURE,
        severity=(
            AlertSeverity.CRITICAL
            if failed_count > QUEUE_FAILURE_CRITICAL_THRESHOLD
            else AlertSeverity.HIGH
        ),
        title="❌ QUEUE FAILURES DETECTED",
        message=f"Queue {queue_name} has {failed_count} failed jobs. Check the logs.",
        data={"queue": queue_name, "failed_count": failed_count},
        resource_id=queue_name,
    )


# =============================================================================
# LAYER 1: SUPPRESSION
# =============================================================================


class AlertSuppressor:
    """
    One alert per (type, resource, severity) per window.

    The window is claimed with SET NX EX, so concurrent workers raising the
    same alert agree on a single sender. A window of 0 disables suppression.
    A store failure lets the alert through.
    A window whose alert reached no channel is given back with ``release``.
    """

    def __init__(self, store: KeyValueStore | None, window_seconds: int):
        self._store = store
        self.window_seconds = window_seconds

    @staticmethod
    def key(alert: Alert) -> str:
        return f"{KEY_ALERT_SUPPRESS}{alert.type.value}:{alert.resource_id}:{alert.severity.value}"

    async def claim(self, alert: Alert) -> bool:
        """True if the alert should be sent."""
        if self._store is None or self.window_seconds <= 0 or alert.resource_id is None:
            return True
        try:
            return bool(
                await self._store.set(self.key(alert), alert.id, ex=self.window_seconds, nx=True)
            )
        except CacheError as e:
            logger.warning("Alert suppression unavailable", stage=Stage.ALERT.value, error=str(e))
            return True

    async def release(self, alert: Alert) -> None:
        """Reopen the window claimed by ``alert``, if it still holds it."""
        if self._store is None or self.window_seconds <= 0 or alert.resource_id is None:
            return
        try:
            await self._store.delete_if_equals(self.key(alert), alert.id)
        except CacheError as e:
            logger.warning("Alert suppression release failed", stage=Stage.ALERT.value, error=str(e))


# =============================================================================
# LAYER 2: PUBLIC API
# =============================================================================


class AlertManager:
    """
    Usage:
        alerts = AlertManager(datastore, chat=chat_channel, email=email_channel, store=redis)
        await alerts.create_stock_alert(zero=True, product_id="P-1", quantity=0)
    """

    def __init__(
        self,
        datastore: CentralDatastore | None,
        chat: AlertChannel | None = None,
        email: AlertChannel | None = None,
        store: KeyValueStore | None = None,
        suppression_window: int = 3600,
        metrics=None,
    ):
        self._datastore = datastore
        self._chat = chat
        self._email = email
        self._suppressor = AlertSuppressor(store, suppression_window)
        self._metrics = metrics

    def channels_for(self, alert: Alert) -> list[AlertChannel]:
        channels = [self._chat]
        if alert.is_urgent:
            channels.append(self._email)
        return [c for c in channels if c is not None]

    async def send_alert(self, alert: Alert) -> bool:
        """
        STAGE-A.1: Suppress, persist and dispatch

        Returns:
            False if the alert was suppressed
        """
        if not await self._suppressor.claim(alert):
            logger.info(
                "Alert suppressed",
                stage=Stage.ALERT.value,
                alert_type=alert.type.value,
                severity=alert.severity.value,
                resource_id=alert.resource_id,
            )
            if self._metrics is not None:
                self._metrics.record_alert_suppressed(alert.type.value, alert.severity.value)
            return False

        logger.warning(
            "Sending alert",
            stage=Stage.ALERT.value,
            alert_id=alert.id,
            alert_type=alert.type.value,
            severity=alert.severity.value,
            title=alert.title,
        )

        channels = self.channels_for(alert)
        _, *outcomes = await asyncio.gather(
            self._persist(alert), *(self._dispatch(c, alert) for c in channels)
        )
        if "failed" in outcomes and "sent" not in outcomes:
            await self._suppressor.release(alert)
            logger.error(
                "Alert reached no channel, suppression window released",
                stage=Stage.ALERT.value,
                alert_id=alert.id,
                alert_type=alert.type.value,
            )
        return True

    async def _persist(self, alert: Alert) -> None:
        if self._datastore is None:
            return
        try:
            await self._datastore.insert_alert(alert.to_record())
        except DatastoreError as e:
            logger.error(
                "Failed to persist alert", stage=Stage.ALERT.value, alert_id=alert.id, error=str(e)
            )

    async def _dispatch(self, channel: AlertChannel, alert: Alert) -> str:
        try:
            sent = await channel.send(alert)
            outcome = "sent" if sent else "skipped"
        except Exception as e:
            outcome = "failed"
            logger.error(
                "Alert channel failed",
                stage=Stage.ALERT.value,
                channel=channel.name,
                alert_id=alert.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=not isinstance(e, AlertDispatchError),
            )
        if self._metrics is not None:
            self._metrics.record_alert_sent(alert.severity.value, channel.name, outcome)
        return outcome

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    async def create_stock_alert(self, zero: bool, product_id: str, quantity: float, **kwargs) -> bool:
        return await self.send_alert(build_stock_alert(zero, product_id, quantity, **kwargs))

    async def create_upstream_offline_alert(self, integration: str, duration_seconds: float) -> bool:
        return await self.send_alert(build_upstream_offline_alert(integration, duration_seconds))

    async def create_queue_backlog_alert(self, queue_name: str, backlog: int) -> bool:
        return await self.send_alert(build_queue_backlog_alert(queue_name, backlog))

    async def create_health_alert(self, service: str, status: str, data: dict[str, Any] | None = None) -> bool:
        return await self.send_alert(build_health_alert(service, status, data))

    async def create_sync_alert(self, service: str, alert_type: str, data: dict[str, Any] | None = None) -> bool:
        return await self.send_alert(build_sync_alert(service, alert_type, data))

    async def create_queue_failure_alert(self, queue_name: str, failed_count: int) -> bool:
        return await self.send_alert(build_queue_failure_alert(queue_name, failed_count))
