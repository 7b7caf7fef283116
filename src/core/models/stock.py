"""
Stock Models

``StockEntry`` is the cached/ERP form of a product's stock in one warehouse.
``StockRecord`` is the processed POS form, classified before upsert.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from src.core.config.constants import CRITICAL_STOCK_THRESHOLD, StockStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_stock(quantity: float | None, minimum_quantity: float) -> StockStatus:
    """
    Derive the stock status of a record.

    - No record at all: ``no_data``
    - Positive quantity at or below the minimum: ``low_stock``
    - Positive quantity above the minimum: ``in_stock``
    - Zero or negative: ``out_of_stock``
    """
    if quantity is None:
        return StockStatus.NO_DATA
    if quantity > 0:
        return StockStatus.LOW_STOCK if quantity <= minimum_quantity else StockStatus.IN_STOCK
    return StockStatus.OUT_OF_STOCK


class StockEntry(BaseModel):
    """Stock of one product in one warehouse, as cached and upserted from the ERP."""

    product_id: str = Field(..., min_length=1, description="Product id in the central store")
    quantity: float = Field(default=0, description="Quantity on hand")
    warehouse: str = Field(default="01", description="Warehouse code")
    minimum_quantity: float = Field(
        default=CRITICAL_STOCK_THRESHOLD, description="Quantity at or below which stock is critical"
    )
    updated_at: datetime = Field(default_factory=_utcnow)
    critical: bool = Field(default=False, description="Flagged by a critical-stock fetch")

    @property
    def is_critical(self) -> bool:
        return self.critical or self.quantity <= self.minimum_quantity


class StockRecord(BaseModel):
    """Processed POS stock record for one product in one store."""

    product_id: str = Field(..., description="Upstream product sid")
    store_id: str = Field(..., description="Upstream store sid")
    store_name: str | None = None
    quantity: float = 0
    minimum_quantity: float = 0
    po_ordered_quantity: float = 0
    po_received_quantity: float = 0
    status: StockStatus = StockStatus.NO_DATA
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def needs_alert(self) -> bool:
        return self.status in (StockStatus.LOW_STOCK, StockStatus.OUT_OF_STOCK)
