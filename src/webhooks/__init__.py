"""
Webhook Ingestion

Signed ERP change events converted into high-priority queue jobs.
"""

from .handler import WebhookHandler
from .routes import router as webhook_router
from .signature import compute_signature, verify_signature

__all__ = ["WebhookHandler", "webhook_router", "compute_signature", "verify_signature"]
