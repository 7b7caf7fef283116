"""
Unit Tests for Webhook Signature Verification
"""

import pytest

from src.core.exceptions import WebhookSignatureError
from src.webhooks.signature import compute_signature, verify_signature

BODY = b'{"event":"stock.updated","data":{"product_id":"P-1"}}'


@pytest.mark.unit
class TestSignature:
    def test_format(self):
        signature = compute_signature("secret", BODY)

        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_valid_signature(self):
        verify_signature("secret", BODY, compute_signature("secret", BODY))

    def test_bare_digest_is_accepted(self):
        verify_signature("secret", BODY, compute_signature("secret", BODY)[len("sha256="):])

    def test_missing_header(self):
        with pytest.raises(WebhookSignatureError, match="Missing"):
            verify_signature("secret", BODY, None)

    def test_wrong_secret(self):
        with pytest.raises(WebhookSignatureError, match="Invalid"):
            verify_signature("secret", BODY, compute_signature("other", BODY))

    def test_tampered_body(self):
        signature = compute_signature("secret", BODY)

        with pytest.raises(WebhookSignatureError):
            verify_signature("secret", BODY + b" ", signature)
