"""
Webhook Signature Verification

The ERP signs the raw request body with HMAC-SHA256 using the shared secret
and sends ``X-ERP-Signature: sha256=<hex digest>``.
"""

import hashlib
import hmac

from src.core.config.constants import SIGNATURE_PREFIX
from src.core.exceptions import WebhookSignatureError


def compute_signature(secret: str, body: bytes) -> str:
    """Header value for ``body``: ``sha256=<hex>``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, header: str | None) -> None:
    """
    Raises:
        WebhookSignatureError: Header missing or digest mismatch
    """
    if not header:
        raise WebhookSignatureError("Missing signature")

    provided = header[len(SIGNATURE_PREFIX):] if header.startswith(SIGNATURE_PREFIX) else header
    expected = compute_signature(secret, body)[len(SIGNATURE_PREFIX):]
    if not hmac.compare_digest(expected, provided):
        raise WebhookSignatureError("Invalid signature")
