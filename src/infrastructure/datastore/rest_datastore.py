"""
REST Central Datastore

``CentralDatastore`` over a PostgREST-compatible HTTP API.

Architectural Decision: upsert through ``on_conflict`` + merge-duplicates
- Re-sending a row with the same conflict keys updates it in place, so a
  retried or repeated batch never duplicates rows
- Batches are chunked; a failing chunk is counted and the next chunk is still
  sent, so one bad row cannot sink a whole sync
- Transport errors are retried by a tenacity decorator; HTTP errors are not

Author: System Architect
Date: 2025-12-14
"""

from datetime import datetime, timezone
from typing import Any

import httpx

from src.core.config.constants import UPSERT_BATCH_SIZE, Stage
from src.core.exceptions import DatastoreError
from src.core.interfaces.datastore import (
    TABLE_ALERTS,
    TABLE_INTEGRATION_LOGS,
    TABLE_POS_PRODUCTS,
    TABLE_PRODUCTS,
    UpsertResult,
)
from src.core.logging.logger import get_logger
from src.core.resilience.retry import create_retry_decorator

logger = get_logger(__name__)


class RestDatastore:
    """
    Usage:
        datastore = RestDatastore(settings.datastore)
        result = await datastore.batch_upsert("stock", rows, ["product_id", "warehouse"])
    """

    def __init__(self, settings, client: httpx.AsyncClient | None = None):
        self.table_prefix = settings.DATASTORE_TABLE_PREFIX
        self._client = client or httpx.AsyncClient(
            base_url=f"{settings.DATASTORE_URL.rstrip('/')}/rest/v1",
            timeout=settings.DATASTORE_TIMEOUT,
            headers={
                "apikey": settings.DATASTORE_SERVICE_KEY,
                "Authorization": f"Bearer {settings.DATASTORE_SERVICE_KEY}",
                "Content-Type": "application/json",
            },
        )

    def _table(self, table: str) -> str:
        return f"{self.table_prefix}{table}"

    @create_retry_decorator(retry_exceptions=(httpx.TransportError,))
    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        response = await self._client.request(
            method, f"/{self._table(table)}", params=params, json=json, headers=headers
        )
        if response.status_code >= 400:
            raise DatastoreError(
                f"Datastore {method} {table} failed with {response.status_code}",
                details={"table": table, "status_code": response.status_code, "body": response.text[:500]},
            )
        if not response.content:
            return None
        return response.json()

    async def _select(self, table: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            return await self._request("GET", table, params=params) or []
        except httpx.TransportError as e:
            raise DatastoreError(f"Datastore unreachable: {e}", details={"table": table}) from e

    async def _insert(self, table: str, row: dict[str, Any]) -> None:
        try:
            await self._request("POST", table, json=row, headers={"Prefer": "return=minimal"})
        except httpx.TransportError as e:
            raise DatastoreError(f"Datastore unreachable: {e}", details={"table": table}) from e

    # -------------------------------------------------------------------------
    # CentralDatastore
    # -------------------------------------------------------------------------

    async def batch_upsert(
        self,
        table: str,
        rows: list[dict[str, Any]],
        conflict_keys: list[str],
        batch_size: int = UPSERT_BATCH_SIZE,
    ) -> UpsertResult:
        result = UpsertResult()
        for start in range(0, len(rows), batch_size):
            chunk = rows[start:start + batch_size]
            try:
                await self._request(
                    "POST",
                    table,
                    params={"on_conflict": ",".join(conflict_keys)},
                    json=chunk,
                    headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
                )
                result.success_count += len(chunk)
            except (DatastoreError, httpx.TransportError) as e:
                result.failed_count += len(chunk)
                result.errors.append(str(e))
                logger.error(
                    "Upsert batch failed",
                    stage=Stage.DATASTORE.value,
                    table=table,
                    batch_start=start,
                    batch_size=len(chunk),
                    error=str(e),
                )

        logger.info(
            "Batch upsert finished",
            stage=Stage.DATASTORE.value,
            table=table,
            success_count=result.success_count,
            failed_count=result.failed_count,
        )
        return result

    async def get_last_sync_timestamp(self, source: str, entity_type: str) -> datetime | None:
        rows = await self._select(
            TABLE_INTEGRATION_LOGS,
            {
                "select": "created_at",
                "source": f"eq.{source}",
                "entity_type": f"eq.{entity_type}",
                "status": "eq.success",
                "order": "created_at.desc",
                "limit": 1,
            },
        )
        if not rows:
            return None
        return datetime.fromisoformat(rows[0]["created_at"])

    async def append_integration_log(
        self,
        source: str,
        entity_type: str,
        status: str,
        details: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        await self._insert(
            TABLE_INTEGRATION_LOGS,
            {
                "source": source,
                "entity_type": entity_type,
                "status": status,
                "details": details or {},
                "error_message": error,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def list_products(self, resource_id: str) -> list[dict[str, Any]]:
        return await self._select(
            TABLE_POS_PRODUCTS,
            {"select": "*", "store_id": f"eq.{resource_id}", "external_id": "not.is.null"},
        )

    async def find_product(self, external_id: str) -> dict[str, Any] | None:
        rows = await self._select(
            TABLE_PRODUCTS, {"select": "*", "external_id": f"eq.{external_id}", "limit": 1}
        )
        return rows[0] if rows else None

    async def list_active_products(self, limit: int) -> list[dict[str, Any]]:
        return await self._select(
            TABLE_PRODUCTS,
            {"select": "*", "active": "eq.true", "order": "sales_count.desc", "limit": limit},
        )

    async def insert_alert(self, alert: dict[str, Any]) -> None:
        await self._insert(TABLE_ALERTS, alert)

    async def health_check(self) -> bool:
        try:
            await self._select(TABLE_PRODUCTS, {"select": "external_id", "limit": 1})
            return True
        except DatastoreError as e:
            logger.warning("Datastore health check failed", stage=Stage.DATASTORE.value, error=str(e))
            return False

    async def close(self) -> None:
        await self._client.aclose()
