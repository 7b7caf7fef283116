"""
Alert Model

An alert is created once, persisted once and fanned out; it is never mutated.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from src.core.config.constants import AlertSeverity, AlertType


class Alert(BaseModel):
    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    resource_id: str | None = Field(default=None, description="Resource the alert is about")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_urgent(self) -> bool:
        """HIGH and CRITICAL alerts go to every channel."""
        return self.severity in (AlertSeverity.HIGH, AlertSeverity.CRITICAL)

    def to_record(self) -> dict[str, Any]:
        """Row for the durable alert log."""
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "resource_id": self.resource_id,
            "created_at": self.timestamp.isoformat(),
        }
