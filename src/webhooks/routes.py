"""
Webhook Routes

POST /webhooks/erp/stock     stock.updated | stock.depleted | stock.critical
POST /webhooks/erp/products  product.created | product.updated | product.deleted

The signature is checked over the raw body before it is parsed.
"""

from datetime import datetime, timezone

import orjson
from fastapi import APIRouter, HTTPException, Request

from src.api.deps import get_runtime
from src.core.config.constants import HEADER_SIGNATURE, Stage
from src.core.exceptions import (
    MalformedWebhookEventError,
    UnknownWebhookEventError,
    WebhookSignatureError,
)
from src.core.logging.logger import get_logger

from .signature import verify_signature

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks/erp", tags=["Webhooks"])


async def _read_event(request: Request, runtime) -> tuple[str, object]:
    body = await request.body()
    if len(body) > runtime.settings.WEBHOOK_MAX_BODY_BYTES:
        raise HTTPException(status_code=413, detail="Payload too large")
    try:
        verify_signature(runtime.settings.WEBHOOK_SECRET, body, request.headers.get(HEADER_SIGNATURE))
    except WebhookSignatureError as e:
        logger.warning("Webhook rejected", stage=Stage.WEBHOOK.value, path=request.url.path, reason=e.message)
        runtime.metrics.record_webhook_event("unknown", "unauthorized")
        raise HTTPException(status_code=401, detail=e.message) from None

    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    return str(payload.get("event")), payload.get("data")


async def _accept(request: Request, handle) -> dict:
    runtime = get_runtime(request)
    event, data = await _read_event(request, runtime)
    try:
        job_ids = await handle(runtime.webhooks, event, data)
    except UnknownWebhookEventError as e:
        logger.warning("Unknown webhook event", stage=Stage.WEBHOOK.value, webhook_event=event)
        runtime.metrics.record_webhook_event(event, "unknown_event")
        raise HTTPException(status_code=400, detail=e.message) from None
    except MalformedWebhookEventError:
        runtime.metrics.record_webhook_event(event, "invalid")
        raise HTTPException(status_code=400, detail="Malformed event data") from None

    runtime.metrics.record_webhook_event(event, "accepted")
    return {
        "status": "accepted",
        "event": event,
        "jobs": job_ids,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/stock")
async def stock_webhook(request: Request):
    """Stock change events from the ERP."""
    return await _accept(request, lambda handler, event, data: handler.handle_stock_event(event, data))


@router.post("/products")
async def products_webhook(request: Request):
    """Product change events from the ERP."""
    return await _accept(request, lambda handler, event, data: handler.handle_product_event(event, data))
