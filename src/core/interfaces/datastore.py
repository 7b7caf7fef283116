"""
Central Datastore Protocol

The central datastore is the system of record. The worker engine only sees it
through this batch-upsert/read contract; schema and query semantics belong to
the datastore itself.

Author: System Architect
Date: 2025-12-08
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

# Table names
TABLE_PRODUCTS = "products"
TABLE_CUSTOMERS = "customers"
TABLE_STOCK = "stock"
TABLE_SALES = "sales"
TABLE_POS_PRODUCTS = "pos_products"
TABLE_POS_STOCK = "pos_stock"
TABLE_INTEGRATION_LOGS = "integration_logs"
TABLE_ALERTS = "alerts"


@dataclass
class UpsertResult:
    """Outcome of a batch upsert."""

    success_count: int = 0
    failed_count: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "errors": self.errors,
        }


@runtime_checkable
class CentralDatastore(Protocol):
    """Contract between sync workers and the central datastore."""

    async def batch_upsert(
        self,
        table: str,
        rows: list[dict[str, Any]],
        conflict_keys: list[str],
        batch_size: int = 100,
    ) -> UpsertResult:
        """
        Idempotently upsert ``rows`` keyed by ``conflict_keys``.

        Rows are sent in chunks of ``batch_size``; a failing chunk counts its
        rows as failed and the next chunk is still attempted.
        """
        ...

    async def get_last_sync_timestamp(self, source: str, entity_type: str) -> datetime | None:
        """Timestamp of the latest successful integration log entry."""
        ...

    async def append_integration_log(
        self,
        source: str,
        entity_type: str,
        status: str,
        details: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Append one entry to the durable integration log."""
        ...

    async def list_products(self, resource_id: str) -> list[dict[str, Any]]:
        """Known products with an upstream id for a POS store."""
        ...

    async def find_product(self, external_id: str) -> dict[str, Any] | None:
        """Look up a product by its upstream id."""
        ...

    async def list_active_products(self, limit: int) -> list[dict[str, Any]]:
        """Active products ordered by popularity."""
        ...

    async def insert_alert(self, alert: dict[str, Any]) -> None:
        """Persist an alert for audit."""
        ...

    async def health_check(self) -> bool:
        """Return True when the datastore answers."""
        ...
