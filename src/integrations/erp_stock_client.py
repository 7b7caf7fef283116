"""
ERP Stock Client

Stock is the freshness-critical path: a shorter timeout, its own higher rate
limit and a dedicated circuit breaker with a lower failure threshold. Reads
of critical stock and all stock writes run under the aggressive retry policy.
"""

from datetime import datetime, timezone
from typing import Any

from src.core.config.constants import (
    CRITICAL_STOCK_THRESHOLD,
    ERP_DELTA_LIMIT,
    ERP_STOCK_BATCH_SIZE,
    HEADER_API_KEY,
    HEADER_CLIENT_ID,
    HEADER_PRIORITY,
    Stage,
)
from src.core.config.settings import get_settings
from src.core.exceptions import UpstreamNotFoundError
from src.core.logging.logger import get_logger
from src.core.models.stock import StockEntry
from src.core.resilience.circuit_breaker import get_circuit_breaker_manager
from src.core.resilience.retry import critical_policy
from src.integrations.base_client import BaseIntegrationClient
from src.integrations.models import ErpPage, ErpStockItem

logger = get_logger(__name__)


class ErpStockClient(BaseIntegrationClient):
    health_path = "/api/v1/stock/count"

    def __init__(self, settings, **kwargs):
        if kwargs.get("breaker") is None:
            cb_settings = get_settings().circuit_breaker
            kwargs["breaker"] = get_circuit_breaker_manager().get_breaker(
                "erp-stock",
                failure_threshold=cb_settings.CB_STOCK_FAILURE_THRESHOLD,
                recovery_timeout=cb_settings.CB_STOCK_RECOVERY_TIMEOUT,
            )
        super().__init__(
            "erp-stock",
            settings.ERP_API_URL,
            timeout=settings.ERP_STOCK_TIMEOUT,
            headers={
                HEADER_API_KEY: settings.ERP_API_KEY,
                HEADER_CLIENT_ID: settings.ERP_CLIENT,
                HEADER_PRIORITY: "HIGH",
            },
            rate_limit_per_minute=settings.ERP_STOCK_RATE_LIMIT,
            **kwargs,
        )
        self._critical = critical_policy()

    @staticmethod
    def _items(payload: Any) -> list[ErpStockItem]:
        return [ErpStockItem.model_validate(item) for item in ErpPage.model_validate(payload).data]

    async def fetch_stock_delta(self, last_sync: datetime | None = None) -> list[ErpStockItem]:
        params: dict[str, Any] = {"limit": ERP_DELTA_LIMIT}
        if last_sync is not None:
            params["modified_since"] = last_sync.isoformat()

        logger.info("Fetching stock delta", stage=Stage.INTEGRATION.value, params=params)
        items = self._items(await self.get("/api/v1/stock", params=params, policy=self._critical))
        logger.info("Fetched stock delta", stage=Stage.INTEGRATION.value, count=len(items))
        return items

    async def fetch_critical_stock(self, threshold: int = CRITICAL_STOCK_THRESHOLD) -> list[ErpStockItem]:
        items = self._items(
            await self.get(
                "/api/v1/stock/critical", params={"threshold": threshold}, policy=self._critical
            )
        )
        logger.warning(
            "Critical stock fetched", stage=Stage.INTEGRATION.value, count=len(items), threshold=threshold
        )
        return items

    async def fetch_stock_batch(self, product_ids: list[str]) -> list[ErpStockItem]:
        """Stock for many products, ``ERP_STOCK_BATCH_SIZE`` ids per request."""
        items: list[ErpStockItem] = []
        for start in range(0, len(product_ids), ERP_STOCK_BATCH_SIZE):
            batch = product_ids[start:start + ERP_STOCK_BATCH_SIZE]
            items.extend(self._items(await self.post("/api/v1/stock/batch", json={"product_ids": batch})))
        return items

    async def fetch_stock_by_sku(self, sku: str) -> ErpStockItem | None:
        """None when the ERP has no stock record for the SKU."""
        try:
            payload = await self.get(f"/api/v1/stock/sku/{sku}")
        except UpstreamNotFoundError:
            return None
        return ErpStockItem.model_validate(payload)

    async def update_stock(
        self, product_id: str, quantity: float, warehouse: str, reason: str | None = None
    ) -> ErpStockItem:
        payload = await self.put(
            f"/api/v1/stock/product/{product_id}",
            json={
                "quantity": quantity,
                "warehouse": warehouse,
                "reason": reason or "Integration adjustment",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            policy=self._critical,
        )
        logger.info("Stock updated in ERP", stage=Stage.INTEGRATION.value, product_id=product_id, quantity=quantity)
        return ErpStockItem.model_validate(payload)

    async def _move_reservation(self, action: str, product_id: str, quantity: float, order_id: str) -> ErpStockItem:
        payload = await self.post(
            f"/api/v1/stock/product/{product_id}/{action}",
            json={
                "quantity": quantity,
                "order_id": order_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            policy=self._critical,
        )
        logger.info(
            f"Stock {action} sent to ERP",
            stage=Stage.INTEGRATION.value,
            product_id=product_id,
            quantity=quantity,
            order_id=order_id,
        )
        return ErpStockItem.model_validate(payload)

    async def reserve_stock(self, product_id: str, quantity: float, order_id: str) -> ErpStockItem:
        return await self._move_reservation("reserve", product_id, quantity, order_id)

    async def release_stock(self, product_id: str, quantity: float, order_id: str) -> ErpStockItem:
        return await self._move_reservation("release", product_id, quantity, order_id)

    async def get_available_quantity(self, product_id: str) -> float:
        item = ErpStockItem.model_validate(await self.get(f"/api/v1/stock/product/{product_id}/available"))
        return item.available_quantity if item.available_quantity is not None else item.quantity

    # -------------------------------------------------------------------------
    # Transforms
    # -------------------------------------------------------------------------

    @staticmethod
    def transform_to_internal(item: ErpStockItem) -> dict[str, Any]:
        """ERP stock item -> ``stock`` table row keyed by (product_id, warehouse)."""
        return {
            "product_id": item.product_id,
            "sku": item.sku,
            "quantity": item.quantity,
            "reserved_quantity": item.reserved_quantity or 0,
            "available_quantity": item.available_quantity if item.available_quantity is not None else item.quantity,
            "warehouse": item.warehouse,
            "location": item.location,
            "lot": item.lot,
            "expires_at": item.expires_at.isoformat() if item.expires_at else None,
            "average_cost": item.average_cost,
            "last_movement_at": item.last_movement_at.isoformat() if item.last_movement_at else None,
            "erp_updated_at": item.updated_at.isoformat() if item.updated_at else None,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def to_stock_entry(item: ErpStockItem, critical: bool = False) -> StockEntry:
        return StockEntry(
            product_id=item.product_id,
            quantity=item.quantity,
            warehouse=item.warehouse,
            minimum_quantity=(
                item.minimum_quantity if item.minimum_quantity is not None else CRITICAL_STOCK_THRESHOLD
            ),
            updated_at=item.updated_at or datetime.now(timezone.utc),
            critical=critical,
        )
