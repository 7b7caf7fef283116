"""
Retail POS Client

Per-store product catalog and stock. The POS exposes no delta endpoints, so
catalog pages and per-product stock are cached (4 h and 5 min) and stock for
many products is fetched in parallel batches paced 500 ms apart.

A 404 on a stock lookup means the store has no stock record for the product;
it is returned as ``None`` and processed as ``no_data``, never raised.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

from src.core.config.constants import (
    POS_CLIENT_BATCH_DELAY,
    POS_DEFAULT_BATCH_SIZE,
    Stage,
)
from src.core.exceptions import IntegrationError, UpstreamNotFoundError
from src.core.logging.logger import get_logger
from src.core.models.stock import StockRecord, classify_stock
from src.integrations.base_client import BaseIntegrationClient
from src.integrations.models import (
    BatchError,
    PosInventoryQty,
    PosProduct,
    PosProductPage,
    ProcessedProduct,
    StockBatchResult,
)

logger = get_logger(__name__)

PRODUCT_COLUMNS = "sid,alu,description1,description2,vendor_name,sbsinventoryqtys"
STOCK_COLUMNS = "store_sid,store_name,quantity,minimum_quantity,po_ordered_quantity,po_received_quantity"
DEFAULT_BRAND = "Sem marca"
UNKNOWN_STORE_NAME = "Store not found"


class RetailPosClient(BaseIntegrationClient):
    """
    Usage:
        pos = RetailPosClient(settings.pos, product_cache=product_cache)
        page = await pos.get_products("store-01", limit=100, offset=0)
        batch = await pos.get_products_stock_batch([p.sid for p in page.data], "store-01")
    """

    def __init__(self, settings, product_cache=None, batch_delay: float = POS_CLIENT_BATCH_DELAY, **kwargs):
        super().__init__(
            "retail-pos",
            settings.POS_BASE_URL,
            timeout=settings.POS_TIMEOUT,
            rate_limit_per_minute=settings.POS_RATE_LIMIT,
            **kwargs,
        )
        self.batch_size = settings.POS_BATCH_SIZE or POS_DEFAULT_BATCH_SIZE
        self.batch_delay = batch_delay
        self._cache = product_cache

    async def get_products(
        self,
        store_id: str,
        limit: int = POS_DEFAULT_BATCH_SIZE,
        offset: int = 0,
        cols: str = PRODUCT_COLUMNS,
    ) -> PosProductPage:
        options = {"cols": cols, "limit": limit, "offset": offset}
        if self._cache is not None:
            cached = await self._cache.get_store_page(store_id, options)
            if cached is not None:
                logger.debug("Products cache hit", stage=Stage.INTEGRATION.value, store_id=store_id, **options)
                return PosProductPage.model_validate(cached)

        payload = await self.get("/v1/rest/inventory", params=options) or []
        page = PosProductPage(
            data=[PosProduct.model_validate(p) for p in payload],
            total=len(payload),
            offset=offset,
            limit=limit,
        )
        if self._cache is not None:
            await self._cache.set_store_page(store_id, options, page.model_dump(mode="json"))

        logger.info(
            "Products fetched",
            stage=Stage.INTEGRATION.value,
            store_id=store_id,
            count=len(page.data),
            offset=offset,
            limit=limit,
        )
        return page

    async def get_product_stock(self, product_sid: str, store_id: str) -> PosInventoryQty | None:
        if self._cache is not None:
            cached = await self._cache.get_store_stock(store_id, product_sid)
            if cached is not None:
                return PosInventoryQty.model_validate(cached)

        try:
            payload = await self.get(
                f"/v1/rest/inventory/{product_sid}/sbsinventoryqty/{store_id}",
                params={"cols": STOCK_COLUMNS},
            )
        except UpstreamNotFoundError:
            return None

        if not payload:
            return None
        stock = PosInventoryQty.model_validate(payload[0] if isinstance(payload, list) else payload)
        if self._cache is not None:
            await self._cache.set_store_stock(store_id, product_sid, stock.model_dump(mode="json"))
        return stock

    async def get_products_stock_batch(self, product_sids: list[str], store_id: str) -> StockBatchResult:
        """
        Fetch and process stock for many products.

        Products within a batch are fetched concurrently; a failing product is
        recorded in ``errors`` and does not fail the batch.
        """
        result = StockBatchResult(total=len(product_sids))
        if not product_sids:
            return result

        batch_size = min(len(product_sids), self.batch_size)
        batches = [product_sids[i:i + batch_size] for i in range(0, len(product_sids), batch_size)]

        async def fetch(sid: str) -> StockRecord | None:
            try:
                stock = await self.get_product_stock(sid, store_id)
            except Exception as e:
                result.errors.append(BatchError(sid=sid, error=str(e), timestamp=datetime.now(timezone.utc)))
                return None
            return self.process_stock(stock, sid, store_id)

        for index, batch in enumerate(batches):
            records = await asyncio.gather(*(fetch(sid) for sid in batch))
            result.success.extend(r for r in records if r is not None)
            if index < len(batches) - 1:
                await asyncio.sleep(self.batch_delay)

        logger.info(
            "Stock batch processed",
            stage=Stage.INTEGRATION.value,
            store_id=store_id,
            total=result.total,
            succeeded=len(result.success),
            failed=len(result.errors),
        )
        return result

    async def health_check(self) -> bool:
        try:
            payload = await self._send("GET", "/v1/rest/inventory", params={"limit": 1}, timeout=10.0)
        except IntegrationError as e:
            logger.error("Health check failed", stage=Stage.INTEGRATION.value, integration=self.name, error=str(e))
            return False
        return isinstance(payload, list)

    # -------------------------------------------------------------------------
    # Transforms
    # -------------------------------------------------------------------------

    @staticmethod
    def process_product(product: PosProduct) -> ProcessedProduct:
        now = datetime.now(timezone.utc)
        description = " ".join(p for p in (product.description1, product.description2) if p).strip()
        return ProcessedProduct(
            sid=product.sid,
            alu=product.alu,
            description=description,
            brand=product.vendor_name or DEFAULT_BRAND,
            upc=product.upc,
            price=product.price,
            cost=product.cost,
            active=product.active is not False,
            created_at=product.created_at or now,
            updated_at=product.updated_at or now,
        )

    @staticmethod
    def process_stock(stock: PosInventoryQty | None, product_sid: str, store_id: str) -> StockRecord:
        if stock is None:
            return StockRecord(
                product_id=product_sid,
                store_id=store_id,
                store_name=UNKNOWN_STORE_NAME,
                status=classify_stock(None, 0),
            )

        quantity = stock.quantity or 0
        minimum = stock.minimum_quantity or 0
        return StockRecord(
            product_id=product_sid,
            store_id=stock.store_sid,
            store_name=stock.store_name,
            quantity=quantity,
            minimum_quantity=minimum,
            po_ordered_quantity=stock.po_ordered_quantity or 0,
            po_received_quantity=stock.po_received_quantity or 0,
            status=classify_stock(quantity, minimum),
        )

    @staticmethod
    def product_row(product: PosProduct, store_id: str) -> dict[str, Any]:
        """POS product -> ``pos_products`` row keyed by ``external_id``."""
        processed = RetailPosClient.process_product(product)
        return {
            "external_id": processed.sid,
            "store_id": store_id,
            "sku": processed.alu,
            "name": processed.description,
            "description": product.description2,
            "category": "General",
            "brand": processed.brand,
            "price": processed.price,
            "cost": processed.cost,
            "upc": processed.upc,
            "active": processed.active,
            "metadata": {
                "pos": {
                    "sid": product.sid,
                    "alu": product.alu,
                    "description1": product.description1,
                    "description2": product.description2,
                    "vendor_name": product.vendor_name,
                    "last_sync": datetime.now(timezone.utc).isoformat(),
                }
            },
            "updated_at": processed.updated_at.isoformat(),
        }
