"""
Unit Tests for AlertManager

Severity routing, repeat suppression, persistence and channel isolation.
"""

import pytest

from src.alerts.alert_manager import (
    AlertManager,
    AlertSuppressor,
    build_health_alert,
    build_queue_backlog_alert,
    build_queue_failure_alert,
    build_stock_alert,
    build_sync_alert,
    build_upstream_offline_alert,
)
from src.core.config.constants import AlertSeverity, AlertType
from src.core.exceptions import CacheError, DatastoreError
from tests.test_fixtures.channel_factory import RecordingChannel


@pytest.mark.unit
class TestBuilders:
    def test_stock_alert_severity(self):
        assert build_stock_alert(False, "P-1", 4).severity == AlertSeverity.HIGH
        assert build_stock_alert(True, "P-1", 0).severity == AlertSeverity.CRITICAL

    def test_stock_alert_resource_id(self):
        assert build_stock_alert(True, "P-1", 0, location="01").resource_id == "01:P-1"
        assert build_stock_alert(True, "P-1", 0).resource_id == "P-1"
        assert build_stock_alert(True, "P-1", 0, resource_id="x").resource_id == "x"

    def test_stock_alert_message_defaults(self):
        alert = build_stock_alert(True, "P-1", 0)

        assert "Product: N/A" in alert.message
        assert alert.title == "🔴 OUT OF STOCK"

    def test_upstream_offline_escalates(self):
        assert build_upstream_offline_alert("erp", 60).severity == AlertSeverity.HIGH
        assert build_upstream_offline_alert("erp", 301).severity == AlertSeverity.CRITICAL

    def test_queue_alerts(self):
        assert build_queue_backlog_alert("pos-sync", 10).severity == AlertSeverity.MEDIUM
        assert build_queue_backlog_alert("pos-sync", 1001).severity == AlertSeverity.HIGH
        assert build_queue_failure_alert("pos-sync", 5).severity == AlertSeverity.HIGH
        assert build_queue_failure_alert("pos-sync", 101).severity == AlertSeverity.CRITICAL

    def test_health_and_sync(self):
        assert build_health_alert("redis", "unhealthy").severity == AlertSeverity.CRITICAL
        assert build_health_alert("redis", "degraded").severity == AlertSeverity.HIGH
        assert build_sync_alert("pos", "high_error_rate").severity == AlertSeverity.HIGH
        assert build_sync_alert("pos", "slow").severity == AlertSeverity.MEDIUM


@pytest.mark.unit
class TestRouting:
    async def test_medium_goes_to_chat_only(self, alert_manager, chat_channel, email_channel):
        await alert_manager.create_queue_backlog_alert("pos-sync", 10)

        assert chat_channel.severities() == ["MEDIUM"]
        assert email_channel.sent == []

    async def test_high_and_critical_go_everywhere(self, alert_manager, chat_channel, email_channel):
        await alert_manager.create_stock_alert(zero=False, product_id="P-1", quantity=3)
        await alert_manager.create_stock_alert(zero=True, product_id="P-2", quantity=0)

        assert chat_channel.severities() == ["HIGH", "CRITICAL"]
        assert email_channel.severities() == ["HIGH", "CRITICAL"]

    async def test_alert_is_persisted(self, alert_manager, datastore):
        await alert_manager.create_health_alert("redis", "unhealthy", {"latency_ms": 900})

        record = datastore.alerts[0]
        assert record["type"] == AlertType.HEALTH.value
        assert record["data"]["latency_ms"] == 900
        assert record["resource_id"] == "redis"

    async def test_missing_channels_are_skipped(self, datastore):
        manager = AlertManager(datastore)

        assert await manager.create_stock_alert(zero=True, product_id="P-1", quantity=0) is True
        assert len(datastore.alerts) == 1


@pytest.mark.unit
class TestIsolation:
    async def test_failing_channel_does_not_block_others(self, datastore, email_channel, mock_metrics_collector):
        manager = AlertManager(
            datastore, chat=RecordingChannel("chat", fail=True), email=email_channel, metrics=mock_metrics_collector
        )

        assert await manager.create_stock_alert(zero=True, product_id="P-1", quantity=0) is True

        assert len(email_channel.sent) == 1
        outcomes = {c.args[1]: c.args[2] for c in mock_metrics_collector.record_alert_sent.call_args_list}
        assert outcomes == {"chat": "failed", "email": "sent"}

    async def test_persistence_failure_does_not_block_dispatch(self, datastore, chat_channel):
        async def broken_insert(alert):
            raise DatastoreError("alerts table unavailable")

        datastore.insert_alert = broken_insert
        manager = AlertManager(datastore, chat=chat_channel)

        assert await manager.create_queue_failure_alert("pos-sync", 3) is True
        assert len(chat_channel.sent) == 1

    async def test_unexpected_channel_error_is_contained(self, datastore, email_channel, mock_metrics_collector):
        class CrashingChannel:
            name = "chat"

            async def send(self, alert):
                raise RuntimeError("unexpected payload")

        manager = AlertManager(datastore, chat=CrashingChannel(), email=email_channel, metrics=mock_metrics_collector)

        assert await manager.create_stock_alert(zero=True, product_id="P-1", quantity=0) is True

        assert len(email_channel.sent) == 1
        outcomes = {c.args[1]: c.args[2] for c in mock_metrics_collector.record_alert_sent.call_args_list}
        assert outcomes == {"chat": "failed", "email": "sent"}


@pytest.mark.unit
class TestSuppression:
    async def test_repeat_within_window_is_suppressed(self, alert_manager, chat_channel, datastore):
        assert await alert_manager.create_stock_alert(zero=False, product_id="P-1", quantity=4, location="01")
        assert not await alert_manager.create_stock_alert(zero=False, product_id="P-1", quantity=3, location="01")

        assert len(chat_channel.sent) == 1
        assert len(datastore.alerts) == 1

    async def test_severity_change_is_not_suppressed(self, alert_manager, chat_channel):
        await alert_manager.create_stock_alert(zero=False, product_id="P-1", quantity=4, location="01")
        await alert_manager.create_stock_alert(zero=True, product_id="P-1", quantity=0, location="01")

        assert chat_channel.severities() == ["HIGH", "CRITICAL"]

    async def test_other_resources_are_independent(self, alert_manager, chat_channel):
        await alert_manager.create_stock_alert(zero=True, product_id="P-1", quantity=0)
        await alert_manager.create_stock_alert(zero=True, product_id="P-2", quantity=0)

        assert len(chat_channel.sent) == 2

    async def test_window_expires(self, alert_manager, chat_channel, clock):
        await alert_manager.create_upstream_offline_alert("erp", 10)
        clock.advance(3600)
        await alert_manager.create_upstream_offline_alert("erp", 20)

        assert len(chat_channel.sent) == 2

    async def test_suppression_is_recorded(self, datastore, chat_channel, store, mock_metrics_collector):
        manager = AlertManager(datastore, chat=chat_channel, store=store, metrics=mock_metrics_collector)

        await manager.create_queue_backlog_alert("pos-sync", 10)
        await manager.create_queue_backlog_alert("pos-sync", 11)

        mock_metrics_collector.record_alert_suppressed.assert_called_once_with(
            AlertType.QUEUE_BACKLOG.value, AlertSeverity.MEDIUM.value
        )

    async def test_zero_window_disables_suppression(self, datastore, chat_channel, store):
        manager = AlertManager(datastore, chat=chat_channel, store=store, suppression_window=0)

        await manager.create_queue_backlog_alert("pos-sync", 10)
        await manager.create_queue_backlog_alert("pos-sync", 10)

        assert len(chat_channel.sent) == 2

    async def test_store_failure_lets_alert_through(self):
        class BrokenStore:
            async def set(self, *args, **kwargs):
                raise CacheError("redis down")

        suppressor = AlertSuppressor(BrokenStore(), 3600)

        assert await suppressor.claim(build_stock_alert(True, "P-1", 0)) is True

    async def test_undelivered_alert_is_not_suppressed(self, datastore, store):
        chat = RecordingChannel("chat", fail=True)
        email = RecordingChannel("email", fail=True)
        manager = AlertManager(datastore, chat=chat, email=email, store=store)

        await manager.create_stock_alert(zero=True, product_id="P-1", quantity=0, location="01")
        chat.fail = email.fail = False
        assert await manager.create_stock_alert(zero=True, product_id="P-1", quantity=0, location="01") is True

        assert len(chat.sent) == 1
        assert len(email.sent) == 1

    async def test_partial_delivery_keeps_window(self, datastore, store):
        chat = RecordingChannel("chat", fail=True)
        email = RecordingChannel("email")
        manager = AlertManager(datastore, chat=chat, email=email, store=store)

        await manager.create_stock_alert(zero=True, product_id="P-1", quantity=0)

        assert await store.exists("alert:suppress:zero-stock:P-1:CRITICAL") == 1
        assert await manager.create_stock_alert(zero=True, product_id="P-1", quantity=0) is False

    def test_key_layout(self):
        alert = build_stock_alert(True, "P-1", 0, location="01")

        assert AlertSuppressor.key(alert) == "alert:suppress:zero-stock:01:P-1:CRITICAL"
