"""
Upstream Payload Models

Native shapes returned by the ERP and the retail POS, validated at the client
boundary. Unknown fields are kept (``extra="allow"``) so a transform can pass
them through untouched.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.core.models.stock import StockRecord


class _Upstream(BaseModel):
    model_config = ConfigDict(extra="allow")


# =============================================================================
# ERP
# =============================================================================


class ErpPageMeta(_Upstream):
    total: int = 0
    page: int = 1
    per_page: int = 0
    last_page: int = 1


class ErpPage(_Upstream):
    """Envelope of every ERP collection response."""

    data: list[dict[str, Any]] = Field(default_factory=list)
    meta: ErpPageMeta | None = None


class ErpStockItem(_Upstream):
    product_id: str
    sku: str | None = None
    quantity: float = 0
    reserved_quantity: float | None = None
    available_quantity: float | None = None
    warehouse: str = "01"
    location: str | None = None
    lot: str | None = None
    expires_at: datetime | None = None
    average_cost: float | None = None
    last_movement_at: datetime | None = None
    minimum_quantity: float | None = None
    updated_at: datetime | None = None


# =============================================================================
# Retail POS
# =============================================================================


class PosProduct(_Upstream):
    sid: str
    alu: str | None = None
    description1: str | None = None
    description2: str | None = None
    vendor_name: str | None = None
    upc: str | None = None
    price: float | None = None
    cost: float | None = None
    active: bool | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PosInventoryQty(_Upstream):
    store_sid: str
    store_name: str | None = None
    quantity: float | None = 0
    minimum_quantity: float | None = 0
    po_ordered_quantity: float | None = 0
    po_received_quantity: float | None = 0


class ProcessedProduct(BaseModel):
    """Normalized POS product."""

    sid: str
    alu: str | None = None
    description: str
    brand: str
    upc: str | None = None
    price: float | None = None
    cost: float | None = None
    active: bool = True
    created_at: datetime
    updated_at: datetime


class PosProductPage(BaseModel):
    data: list[PosProduct] = Field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 0


class BatchError(BaseModel):
    sid: str
    error: str
    timestamp: datetime


class StockBatchResult(BaseModel):
    success: list[StockRecord] = Field(default_factory=list)
    errors: list[BatchError] = Field(default_factory=list)
    total: int = 0

    @property
    def processed(self) -> int:
        return len(self.success) + len(self.errors)
