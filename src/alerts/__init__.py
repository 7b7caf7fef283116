"""Alert classification, suppression, persistence and delivery."""

from .alert_manager import (
    AlertManager,
    AlertSuppressor,
    build_health_alert,
    build_queue_backlog_alert,
    build_queue_failure_alert,
    build_stock_alert,
    build_sync_alert,
    build_upstream_offline_alert,
)
from .channels import AlertChannel, ChatWebhookChannel, EmailChannel

__all__ = [
    "AlertChannel",
    "AlertManager",
    "AlertSuppressor",
    "ChatWebhookChannel",
    "EmailChannel",
    "build_health_alert",
    "build_queue_backlog_alert",
    "build_queue_failure_alert",
    "build_stock_alert",
    "build_sync_alert",
    "build_upstream_offline_alert",
]
