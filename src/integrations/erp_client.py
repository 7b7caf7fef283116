"""
ERP Catalog Client

Products, customers and sales. Collections are fetched as deltas
(``modified_since``) or, for the full catalog, page by page until
``meta.last_page``.
"""

from datetime import datetime, timezone
from typing import Any

from src.core.config.constants import (
    ERP_DELTA_LIMIT,
    ERP_SALES_DELTA_LIMIT,
    HEADER_API_KEY,
    HEADER_CLIENT_ID,
    Stage,
)
from src.core.logging.logger import get_logger
from src.integrations.base_client import BaseIntegrationClient
from src.integrations.models import ErpPage

logger = get_logger(__name__)

_INTERNAL_FIELDS = ("id", "external_id", "created_at", "updated_at", "synced_at")


def _delta_params(last_sync: datetime | None, limit: int) -> dict[str, Any]:
    params: dict[str, Any] = {"limit": limit}
    if last_sync is not None:
        params["modified_since"] = last_sync.isoformat()
    return params


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return datetime.fromisoformat(str(value)).isoformat()


class ErpClient(BaseIntegrationClient):
    def __init__(self, settings, **kwargs):
        super().__init__(
            "erp",
            settings.ERP_API_URL,
            timeout=settings.ERP_TIMEOUT,
            headers={HEADER_API_KEY: settings.ERP_API_KEY, HEADER_CLIENT_ID: settings.ERP_CLIENT},
            rate_limit_per_minute=settings.ERP_RATE_LIMIT,
            **kwargs,
        )

    async def _fetch_delta(
        self, path: str, entity: str, last_sync: datetime | None, limit: int
    ) -> list[dict[str, Any]]:
        params = _delta_params(last_sync, limit)
        logger.info(f"Fetching {entity} delta", stage=Stage.INTEGRATION.value, params=params)
        page = ErpPage.model_validate(await self.get(path, params=params))
        logger.info(f"Fetched {entity}", stage=Stage.INTEGRATION.value, count=len(page.data))
        return page.data

    async def fetch_products_delta(self, last_sync: datetime | None = None) -> list[dict[str, Any]]:
        return await self._fetch_delta("/api/v1/products", "products", last_sync, ERP_DELTA_LIMIT)

    async def fetch_all_products(self, page_size: int = ERP_DELTA_LIMIT) -> list[dict[str, Any]]:
        products: list[dict[str, Any]] = []
        page_number = 1
        while True:
            page = ErpPage.model_validate(
                await self.get("/api/v1/products", params={"page": page_number, "limit": page_size})
            )
            products.extend(page.data)
            if page.meta is not None:
                has_more = page_number < page.meta.last_page
            else:
                has_more = len(page.data) == page_size
            if not has_more:
                break
            page_number += 1

        logger.info("Fetched full catalog", stage=Stage.INTEGRATION.value, count=len(products))
        return products

    async def push_product(self, product: dict[str, Any]) -> dict[str, Any]:
        return await self.post("/api/v1/products", json=self.transform_to_external(product))

    async def update_product(self, product_id: str, product: dict[str, Any]) -> dict[str, Any]:
        return await self.put(f"/api/v1/products/{product_id}", json=self.transform_to_external(product))

    async def fetch_customers_delta(self, last_sync: datetime | None = None) -> list[dict[str, Any]]:
        return await self._fetch_delta("/api/v1/customers", "customers", last_sync, ERP_DELTA_LIMIT)

    async def fetch_sales_delta(self, last_sync: datetime | None = None) -> list[dict[str, Any]]:
        return await self._fetch_delta("/api/v1/sales", "sales", last_sync, ERP_SALES_DELTA_LIMIT)

    # -------------------------------------------------------------------------
    # Transforms
    # -------------------------------------------------------------------------

    @staticmethod
    def transform_to_internal(record: dict[str, Any]) -> dict[str, Any]:
        """ERP record -> central row keyed by ``external_id``."""
        row = {k: v for k, v in record.items() if k != "id"}
        row["external_id"] = str(record["id"])
        row["created_at"] = _iso(record.get("created_at"))
        row["updated_at"] = _iso(record.get("updated_at"))
        row["synced_at"] = datetime.now(timezone.utc).isoformat()
        return row

    @staticmethod
    def transform_to_external(row: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in row.items() if k not in _INTERNAL_FIELDS}
