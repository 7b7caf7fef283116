"""
Alert Channels

- ChatWebhookChannel: attachment-style JSON posted to a chat incoming webhook
- EmailChannel: SMTP, run in a worker thread so the event loop never blocks

A channel raises ``AlertDispatchError`` on failure; the alert manager decides
what a failure means (it never escalates one).
"""

import asyncio
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Protocol, runtime_checkable

import httpx
import orjson

from src.core.config.constants import SEVERITY_COLORS, AlertSeverity, Stage
from src.core.exceptions import AlertDispatchError
from src.core.logging.logger import get_logger
from src.core.models.alert import Alert

logger = get_logger(__name__)

SEVERITY_EMOJI = {
    AlertSeverity.CRITICAL: "🔴",
    AlertSeverity.HIGH: "🟠",
    AlertSeverity.MEDIUM: "🟡",
    AlertSeverity.LOW: "🟢",
}
FOOTER = "Stock Sync Workers"


@runtime_checkable
class AlertChannel(Protocol):
    name: str

    async def send(self, alert: Alert) -> bool:
        """
        Deliver the alert.

        Returns:
            False when the channel is not configured and the alert was skipped

        Raises:
            AlertDispatchError: Delivery failed
        """
        ...


class ChatWebhookChannel:
    name = "chat"

    def __init__(
        self,
        webhook_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        username: str = "Stock Sync Alerts",
    ):
        self.webhook_url = webhook_url
        self.username = username
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        fields = [
            {"title": "Severity", "value": alert.severity.value, "short": True},
            {"title": "Type", "value": alert.type.value, "short": True},
            {"title": "Timestamp", "value": alert.timestamp.isoformat(), "short": True},
        ]
        if alert.data:
            details = orjson.dumps(alert.data, option=orjson.OPT_INDENT_2).decode()
            fields.append({"title": "Details", "value": f"```{details}```", "short": False})

        return {
            "username": self.username,
            "icon_emoji": ":warning:",
            "attachments": [
                {
                    "color": SEVERITY_COLORS[alert.severity],
                    "title": f"{SEVERITY_EMOJI[alert.severity]} {alert.title}",
                    "text": alert.message,
                    "fields": fields,
                    "footer": FOOTER,
                    "ts": int(datetime.now(timezone.utc).timestamp()),
                }
            ],
        }

    async def send(self, alert: Alert) -> bool:
        if not self.webhook_url:
            logger.warning("Chat webhook URL not configured", stage=Stage.ALERT.value)
            return False
        try:
            response = await self._client.post(self.webhook_url, json=self.build_payload(alert))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AlertDispatchError(
                "Chat alert delivery failed", details={"channel": self.name, "error": str(e)}
            ) from e
        logger.info("Chat alert sent", stage=Stage.ALERT.value, alert_id=alert.id)
        return True

    async def close(self) -> None:
        await self._client.aclose()


class EmailChannel:
    name = "email"

    def __init__(self, settings, smtp_factory=smtplib.SMTP):
        self._settings = settings
        self._smtp_factory = smtp_factory

    def ready(self) -> bool:
        return bool(self._settings.SMTP_HOST and self._settings.ALERT_EMAIL_TO)

    @staticmethod
    def subject(alert: Alert) -> str:
        return f"🚨 {alert.severity.value} Alert: {alert.title}"

    @staticmethod
    def html_body(alert: Alert) -> str:
        message = alert.message.replace("\n", "<br>")
        details = ""
        if alert.data:
            details = (
                "<h3>Details</h3><pre>"
                f"{orjson.dumps(alert.data, option=orjson.OPT_INDENT_2).decode()}"
                "</pre>"
            )
        return (
            f"<h2>{alert.title}</h2>"
            f"<p><strong>Severity:</strong> {alert.severity.value}</p>"
            f"<p><strong>Type:</strong> {alert.type.value}</p>"
            f"<p><strong>Time:</strong> {alert.timestamp.isoformat()}</p>"
            f"<h3>Message</h3><p>{message}</p>"
            f"{details}"
            f"<hr><p><em>{FOOTER} - Automated Alert</em></p>"
        )

    def build_message(self, alert: Alert) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = self.subject(alert)
        message["From"] = self._settings.SMTP_FROM_EMAIL
        message["To"] = ", ".join(sorted(set(self._settings.ALERT_EMAIL_TO)))
        message.set_content(alert.message)
        message.add_alternative(self.html_body(alert), subtype="html")
        return message

    async def send(self, alert: Alert) -> bool:
        if not self.ready():
            logger.warning("SMTP not configured, email alert skipped", stage=Stage.ALERT.value)
            return False
        message = self.build_message(alert)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise AlertDispatchError(
                "Email alert delivery failed", details={"channel": self.name, "error": str(e)}
            ) from e
        logger.info("Email alert sent", stage=Stage.ALERT.value, alert_id=alert.id, to=message["To"])
        return True

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        smtp = self._smtp_factory(
            host=settings.SMTP_HOST, port=settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT
        )
        try:
            if settings.SMTP_USE_TLS:
                smtp.starttls()
            if settings.SMTP_USERNAME:
                smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except smtplib.SMTPException:
                smtp.close()
