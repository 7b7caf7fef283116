"""
Stock Cache with Critical Shadow Namespace

Entries live under ``stock:{product_id}`` with the standard TTL. Any entry whose
quantity is at or below the critical threshold is mirrored into
``stock:critical:{product_id}`` with a much shorter TTL, so the riskiest data
is refreshed most often. Entries flagged critical by a critical-stock fetch use
the short TTL in the main namespace too.

Author: System Architect
Date: 2025-12-13
"""

from typing import Any

from pydantic import ValidationError

from src.core.config.constants import KEY_STOCK, KEY_STOCK_CRITICAL, Stage
from src.core.logging.logger import get_logger
from src.core.models.stock import StockEntry
from src.infrastructure.cache.cache_manager import CacheManager

logger = get_logger(__name__)


class StockCache:
    """
    Args:
        cache: Generic cache manager
        ttl: Standard entry TTL (seconds)
        critical_ttl: Shadow and critical-flagged entry TTL (seconds)
        critical_threshold: Quantity at or below which an entry is mirrored
    """

    def __init__(
        self,
        cache: CacheManager,
        ttl: int = 30,
        critical_ttl: int = 15,
        critical_threshold: float = 10,
    ):
        self._cache = cache
        self.ttl = ttl
        self.critical_ttl = critical_ttl
        self.critical_threshold = critical_threshold

    @staticmethod
    def key(product_id: str) -> str:
        return f"{KEY_STOCK}{product_id}"

    @staticmethod
    def critical_key(product_id: str) -> str:
        return f"{KEY_STOCK_CRITICAL}{product_id}"

    def _ttl_for(self, entry: StockEntry) -> int:
        return self.critical_ttl if entry.critical else self.ttl

    def _is_shadowed(self, entry: StockEntry) -> bool:
        return entry.quantity <= self.critical_threshold

    @staticmethod
    def _parse(value: Any) -> StockEntry | None:
        if value is None:
            return None
        try:
            return StockEntry.model_validate(value)
        except ValidationError as e:
            logger.warning("Discarding malformed stock cache entry", stage="C.1", error=str(e))
            return None

    async def get(self, product_id: str) -> StockEntry | None:
        return self._parse(await self._cache.get(self.key(product_id)))

    async def get_many(self, product_ids: list[str]) -> dict[str, StockEntry]:
        found = await self._cache.get_many([self.key(pid) for pid in product_ids])
        result: dict[str, StockEntry] = {}
        for product_id in product_ids:
            entry = self._parse(found.get(self.key(product_id)))
            if entry is not None:
                result[product_id] = entry
        logger.debug(
            "Stock cache multi-get", stage="C.4", hits=len(result), requested=len(product_ids)
        )
        return result

    async def set(self, entry: StockEntry) -> None:
        payload = entry.model_dump(mode="json")
        await self._cache.set(self.key(entry.product_id), payload, self._ttl_for(entry))
        if self._is_shadowed(entry):
            await self._cache.set(
                self.critical_key(entry.product_id),
                {**payload, "critical": True},
                self.critical_ttl,
            )

    async def set_many(self, entries: list[StockEntry]) -> None:
        """Pipelined write; grouped per TTL because a pipeline batch shares one TTL."""
        if not entries:
            return

        standard: dict[str, Any] = {}
        short: dict[str, Any] = {}
        for entry in entries:
            payload = entry.model_dump(mode="json")
            target = short if entry.critical else standard
            target[self.key(entry.product_id)] = payload
            if self._is_shadowed(entry):
                short[self.critical_key(entry.product_id)] = {**payload, "critical": True}

        if standard:
            await self._cache.set_many(standard, self.ttl)
        if short:
            await self._cache.set_many(short, self.critical_ttl)

        logger.debug("Stock cache batch set", stage="C.5", count=len(entries))

    async def get_critical_items(self) -> list[StockEntry]:
        keys = await self._cache.keys(f"{KEY_STOCK_CRITICAL}*")
        if not keys:
            return []
        found = await self._cache.get_many(keys)
        return [entry for entry in (self._parse(v) for v in found.values()) if entry is not None]

    async def invalidate(self, product_id: str) -> None:
        await self._cache.delete(self.key(product_id), self.critical_key(product_id))
        logger.debug("Stock cache invalidated", stage="C.3", product_id=product_id)

    async def preload_popular(self, entries: list[StockEntry]) -> None:
        await self.set_many(entries)
        logger.info("Preloaded popular products", stage=Stage.CACHE.value, count=len(entries))

    async def clear_all(self) -> int:
        # "stock:*" also matches the critical namespace
        return await self._cache.clear_pattern(f"{KEY_STOCK}*")

    async def get_stats(self) -> dict[str, Any]:
        all_keys = await self._cache.count_pattern(f"{KEY_STOCK}*")
        critical_keys = await self._cache.count_pattern(f"{KEY_STOCK_CRITICAL}*")
        memory = await self._cache.memory_info()
        return {
            "total_keys": all_keys - critical_keys,
            "critical_keys": critical_keys,
            "memory_usage": memory.get("used_memory_human", "unknown"),
        }
