#!/usr/bin/env python3
"""
Generic TTL Cache Manager

Architecture:
    CacheManager (Public API)
        ├── KeyValueStore (Redis in production, in-memory fake in tests)
        └── CacheObserver (hit/miss statistics, logging, Prometheus)

Values are orjson-encoded. Every operation is best-effort: a store failure is
logged and turned into a neutral result (miss, False, 0) so a cache outage only
adds latency, never breaks a sync.

Author: System Architect
Date: 2025-12-13
"""

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import orjson

from src.core.config.constants import Stage
from src.core.exceptions import CacheError
from src.core.interfaces.cache import KeyValueStore
from src.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)


# =============================================================================
# LAYER 1: OBSERVABILITY
# =============================================================================


class CacheObserver:
    """
    Tracks cache hit/miss statistics per namespace.

    The namespace is the key prefix up to the first ':' so "stock:42" and
    "stock:critical:42" are both counted under "stock".
    """

    def __init__(self, metrics=None):
        self._metrics = metrics
        self._hits = 0
        self._misses = 0
        self._errors = 0

    @staticmethod
    def namespace(key: str) -> str:
        return key.split(":", 1)[0]

    def record_get(self, key: str, hit: bool) -> None:
        namespace = self.namespace(key)
        if hit:
            self._hits += 1
            if self._metrics is not None:
                self._metrics.record_cache_hit(namespace)
        else:
            self._misses += 1
            if self._metrics is not None:
                self._metrics.record_cache_miss(namespace)

    def record_error(self, operation: str, key: str, error: Exception) -> None:
        self._errors += 1
        logger.warning(
            "Cache operation failed",
            stage=Stage.CACHE.value,
            operation=operation,
            key=key,
            error=str(error),
            error_type=type(error).__name__,
        )

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "total_requests": total,
            "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
        }


# =============================================================================
# LAYER 2: PUBLIC API
# =============================================================================


class CacheManager:
    """
    TTL cache over any ``KeyValueStore``.

    Usage:
        cache = CacheManager(store)
        await cache.set("product:42", {"name": "Drill"}, ttl=300)
        product = await cache.get("product:42")
    """

    def __init__(self, store: KeyValueStore, metrics=None):
        self._store = store
        self._observer = CacheObserver(metrics)

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @staticmethod
    def _encode(value: Any) -> str:
        return orjson.dumps(value).decode("utf-8")

    @staticmethod
    def _decode(raw: str | None) -> Any:
        if raw is None:
            return None
        return orjson.loads(raw)

    async def get(self, key: str) -> Any | None:
        """
        STAGE-C.1: Cache lookup

        Returns:
            Decoded value, or None on miss or store failure
        """
        try:
            raw = await self._store.get(key)
            value = self._decode(raw)
        except (CacheError, orjson.JSONDecodeError) as e:
            self._observer.record_error("get", key, e)
            return None

        self._observer.record_get(key, value is not None)
        return value

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        STAGE-C.2: Cache population

        Every entry carries a TTL; there is no way to write a permanent entry.
        """
        try:
            await self._store.set(key, self._encode(value), ex=ttl)
        except CacheError as e:
            self._observer.record_error("set", key, e)
            return False

        log_stage(logger, "C.2", "Cache set", level="debug", cache_key=key, ttl=ttl)
        return True

    async def delete(self, *keys: str) -> int:
        """STAGE-C.3: Invalidation"""
        if not keys:
            return 0
        try:
            return await self._store.delete(*keys)
        except CacheError as e:
            self._observer.record_error("delete", ",".join(keys), e)
            return 0

    async def exists(self, key: str) -> bool:
        try:
            return await self._store.exists(key) > 0
        except CacheError as e:
            self._observer.record_error("exists", key, e)
            return False

    async def expire(self, key: str, ttl: int) -> bool:
        try:
            return await self._store.expire(key, ttl)
        except CacheError as e:
            self._observer.record_error("expire", key, e)
            return False

    async def incr(self, key: str, ttl: int | None = None) -> int | None:
        """Atomic counter; ``ttl`` is applied when the counter is created."""
        try:
            value = await self._store.incr(key)
            if ttl is not None and value == 1:
                await self._store.expire(key, ttl)
            return value
        except CacheError as e:
            self._observer.record_error("incr", key, e)
            return None

    async def ttl(self, key: str) -> int:
        """Remaining TTL, -2 when absent or unknown."""
        try:
            return await self._store.ttl(key)
        except CacheError as e:
            self._observer.record_error("ttl", key, e)
            return -2

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        """
        STAGE-C.4: Batch lookup (single MGET)

        Returns:
            Mapping of key -> value for hits only
        """
        if not keys:
            return {}
        try:
            raws = await self._store.mget(keys)
        except CacheError as e:
            self._observer.record_error("get_many", f"{len(keys)} keys", e)
            return {}

        found: dict[str, Any] = {}
        for key, raw in zip(keys, raws):
            try:
                value = self._decode(raw)
            except orjson.JSONDecodeError as e:
                self._observer.record_error("get_many", key, e)
                value = None
            self._observer.record_get(key, value is not None)
            if value is not None:
                found[key] = value
        return found

    async def set_many(self, entries: dict[str, Any], ttl: int) -> bool:
        """
        STAGE-C.5: Pipelined batch write

        Pipelining is for throughput only; a failure may leave part of the
        batch written.
        """
        if not entries:
            return True
        try:
            await self._store.set_many(
                {key: self._encode(value) for key, value in entries.items()}, ex=ttl
            )
        except CacheError as e:
            self._observer.record_error("set_many", f"{len(entries)} keys", e)
            return False

        log_stage(logger, "C.5", "Cache batch set", level="debug", count=len(entries), ttl=ttl)
        return True

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        try:
            keys = await self._store.scan_keys(pattern)
            if not keys:
                return 0
            deleted = await self._store.delete(*keys)
        except CacheError as e:
            self._observer.record_error("clear_pattern", pattern, e)
            return 0

        logger.info("Cache pattern cleared", stage=Stage.CACHE.value, pattern=pattern, deleted=deleted)
        return deleted

    async def keys(self, pattern: str) -> list[str]:
        """Keys matching a glob pattern, empty on store failure."""
        try:
            return await self._store.scan_keys(pattern)
        except CacheError as e:
            self._observer.record_error("keys", pattern, e)
            return []

    async def count_pattern(self, pattern: str) -> int:
        return len(await self.keys(pattern))

    async def get_or_compute(
        self, key: str, compute_fn: Callable[[], Awaitable[Any]], ttl: int
    ) -> Any:
        """
        Cache-aside: return the cached value or compute, cache and return it.

        ``None`` results are not cached.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await compute_fn()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    def stats(self) -> dict[str, Any]:
        return {
            **self._observer.get_stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def memory_info(self) -> dict[str, Any]:
        try:
            return await self._store.info_memory()
        except CacheError as e:
            self._observer.record_error("info_memory", "-", e)
            return {}
