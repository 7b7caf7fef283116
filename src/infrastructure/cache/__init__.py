"""
Cache Module

Generic TTL cache over the shared key-value store plus domain caches
(stock with critical shadow namespace, products, sync status).
"""

from .cache_manager import CacheManager
from .product_cache import ProductCache
from .redis_client import RedisClient, get_redis_client
from .stock_cache import StockCache
from .sync_status_cache import SyncStatusCache

__all__ = [
    "CacheManager",
    "ProductCache",
    "RedisClient",
    "StockCache",
    "SyncStatusCache",
    "get_redis_client",
]
