"""
Webhook Ingestion Exceptions

Author: System Architect
Date: 2025-12-08
"""

from src.core.exceptions.base import StockSyncError


class WebhookError(StockSyncError):
    """Base exception for inbound webhook errors."""
    pass


class WebhookSignatureError(WebhookError):
    """Raised when the signature header is missing or does not match."""
    pass


class UnknownWebhookEventError(WebhookError):
    """Raised when the payload carries an event the endpoint does not handle."""
    pass


class MalformedWebhookEventError(WebhookError):
    """Raised when an event's data is not an object (or list of objects) with the id field."""
    pass
