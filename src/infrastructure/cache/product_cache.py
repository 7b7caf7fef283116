"""
Product Cache

- ERP products: ``product:{id}`` with the product TTL
- ERP customers: ``customer:{id}`` with the customer TTL
- POS product pages: ``pos:products:{store}:{options-hash}`` with the long POS TTL
- POS stock: ``pos:stock:{store}:{product}`` with the POS stock TTL

Author: System Architect
Date: 2025-12-13
"""

import hashlib
from typing import Any

import orjson

from src.core.config.constants import KEY_POS_PRODUCTS, KEY_POS_STOCK, KEY_PRODUCT, Stage
from src.core.logging.logger import get_logger
from src.infrastructure.cache.cache_manager import CacheManager

logger = get_logger(__name__)

KEY_CUSTOMER = "customer:"


class ProductCache:
    def __init__(
        self,
        cache: CacheManager,
        product_ttl: int = 300,
        customer_ttl: int = 600,
        pos_product_ttl: int = 4 * 60 * 60,
        pos_stock_ttl: int = 5 * 60,
    ):
        self._cache = cache
        self.product_ttl = product_ttl
        self.customer_ttl = customer_ttl
        self.pos_product_ttl = pos_product_ttl
        self.pos_stock_ttl = pos_stock_ttl

    # -------------------------------------------------------------------------
    # ERP catalog
    # -------------------------------------------------------------------------

    async def get_product(self, product_id: str) -> dict[str, Any] | None:
        return await self._cache.get(f"{KEY_PRODUCT}{product_id}")

    async def set_products(self, products: list[dict[str, Any]], id_field: str = "id") -> None:
        entries = {
            f"{KEY_PRODUCT}{product[id_field]}": product
            for product in products
            if product.get(id_field) is not None
        }
        await self._cache.set_many(entries, self.product_ttl)

    async def set_customers(self, customers: list[dict[str, Any]], id_field: str = "id") -> None:
        entries = {
            f"{KEY_CUSTOMER}{customer[id_field]}": customer
            for customer in customers
            if customer.get(id_field) is not None
        }
        await self._cache.set_many(entries, self.customer_ttl)

    async def invalidate_product(self, product_id: str) -> None:
        await self._cache.delete(f"{KEY_PRODUCT}{product_id}")

    # -------------------------------------------------------------------------
    # POS store data
    # -------------------------------------------------------------------------

    @staticmethod
    def page_key(store_id: str, options: dict[str, Any]) -> str:
        digest = hashlib.md5(orjson.dumps(options, option=orjson.OPT_SORT_KEYS)).hexdigest()
        return f"{KEY_POS_PRODUCTS}{store_id}:{digest}"

    async def get_store_page(self, store_id: str, options: dict[str, Any]) -> list[Any] | None:
        return await self._cache.get(self.page_key(store_id, options))

    async def set_store_page(
        self, store_id: str, options: dict[str, Any], products: list[Any]
    ) -> None:
        await self._cache.set(self.page_key(store_id, options), products, self.pos_product_ttl)

    @staticmethod
    def stock_key(store_id: str, product_id: str) -> str:
        return f"{KEY_POS_STOCK}{store_id}:{product_id}"

    async def get_store_stock(self, store_id: str, product_id: str) -> dict[str, Any] | None:
        return await self._cache.get(self.stock_key(store_id, product_id))

    async def set_store_stock(self, store_id: str, product_id: str, stock: dict[str, Any]) -> None:
        await self._cache.set(self.stock_key(store_id, product_id), stock, self.pos_stock_ttl)

    async def invalidate_store(self, store_id: str) -> int:
        deleted = await self._cache.clear_pattern(f"{KEY_POS_PRODUCTS}{store_id}:*")
        deleted += await self._cache.clear_pattern(f"{KEY_POS_STOCK}{store_id}:*")
        logger.info(
            "Store cache invalidated", stage=Stage.CACHE.value, store_id=store_id, deleted=deleted
        )
        return deleted

    async def get_store_stats(self, store_id: str) -> dict[str, int]:
        return {
            "product_pages": await self._cache.count_pattern(f"{KEY_POS_PRODUCTS}{store_id}:*"),
            "stock_entries": await self._cache.count_pattern(f"{KEY_POS_STOCK}{store_id}:*"),
        }
