"""
Unit Tests for CacheManager

Tests TTL semantics, batch operations and best-effort behaviour when the
store is down.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.exceptions import CacheConnectionError
from src.infrastructure.cache.cache_manager import CacheManager, CacheObserver


@pytest.fixture
def broken_store():
    store = MagicMock()
    for name in ("get", "set", "delete", "exists", "expire", "incr", "ttl", "mget", "set_many", "scan_keys"):
        setattr(store, name, AsyncMock(side_effect=CacheConnectionError("redis down")))
    return store


@pytest.mark.unit
class TestCacheManagerBasics:
    async def test_set_then_get(self, cache_manager):
        assert await cache_manager.set("product:42", {"name": "Drill"}, ttl=300) is True
        assert await cache_manager.get("product:42") == {"name": "Drill"}

    async def test_entry_expires_after_ttl(self, cache_manager, clock):
        await cache_manager.set("stock:1", {"quantity": 5}, ttl=30)

        clock.advance(29)
        assert await cache_manager.get("stock:1") == {"quantity": 5}

        clock.advance(1)
        assert await cache_manager.get("stock:1") is None

    async def test_ttl_reported(self, cache_manager):
        await cache_manager.set("stock:1", 1, ttl=30)

        assert await cache_manager.ttl("stock:1") == 30
        assert await cache_manager.ttl("stock:missing") == -2

    async def test_delete_and_exists(self, cache_manager):
        await cache_manager.set("a", 1, ttl=10)

        assert await cache_manager.exists("a") is True
        assert await cache_manager.delete("a", "b") == 1
        assert await cache_manager.exists("a") is False
        assert await cache_manager.delete() == 0

    async def test_incr_sets_ttl_on_creation(self, cache_manager, clock):
        assert await cache_manager.incr("counter", ttl=60) == 1
        assert await cache_manager.incr("counter", ttl=60) == 2

        clock.advance(60)
        assert await cache_manager.incr("counter", ttl=60) == 1


@pytest.mark.unit
class TestCacheManagerBatch:
    async def test_set_many_get_many(self, cache_manager):
        await cache_manager.set_many({"stock:1": {"q": 1}, "stock:2": {"q": 2}}, ttl=30)

        found = await cache_manager.get_many(["stock:1", "stock:2", "stock:3"])

        assert found == {"stock:1": {"q": 1}, "stock:2": {"q": 2}}

    async def test_set_many_shares_ttl(self, cache_manager, clock):
        await cache_manager.set_many({"a": 1, "b": 2}, ttl=10)
        clock.advance(10)

        assert await cache_manager.get_many(["a", "b"]) == {}

    async def test_clear_pattern(self, cache_manager):
        await cache_manager.set_many({"stock:1": 1, "stock:2": 2, "product:1": 3}, ttl=30)

        assert await cache_manager.clear_pattern("stock:*") == 2
        assert await cache_manager.keys("*") == ["product:1"]

    async def test_corrupt_value_is_a_miss(self, cache_manager, store):
        await store.set("stock:1", "{not json", ex=30)

        assert await cache_manager.get("stock:1") is None


@pytest.mark.unit
class TestCacheAside:
    async def test_computes_once(self, cache_manager):
        compute = AsyncMock(return_value={"id": 1})

        first = await cache_manager.get_or_compute("product:1", compute, ttl=60)
        second = await cache_manager.get_or_compute("product:1", compute, ttl=60)

        assert first == second == {"id": 1}
        compute.assert_awaited_once()

    async def test_none_not_cached(self, cache_manager):
        compute = AsyncMock(return_value=None)

        await cache_manager.get_or_compute("product:1", compute, ttl=60)
        await cache_manager.get_or_compute("product:1", compute, ttl=60)

        assert compute.await_count == 2


@pytest.mark.unit
class TestCacheOutage:
    async def test_every_operation_degrades(self, broken_store):
        cache = CacheManager(broken_store)

        assert await cache.get("k") is None
        assert await cache.set("k", 1, ttl=10) is False
        assert await cache.delete("k") == 0
        assert await cache.exists("k") is False
        assert await cache.incr("k") is None
        assert await cache.ttl("k") == -2
        assert await cache.get_many(["k"]) == {}
        assert await cache.set_many({"k": 1}, ttl=10) is False
        assert await cache.clear_pattern("*") == 0

    async def test_errors_counted(self, broken_store):
        cache = CacheManager(broken_store)
        await cache.get("k")

        assert cache.stats()["errors"] == 1


@pytest.mark.unit
class TestCacheObserver:
    def test_namespace(self):
        assert CacheObserver.namespace("stock:critical:42") == "stock"

    def test_hit_rate_and_metrics(self, mock_metrics_collector):
        observer = CacheObserver(mock_metrics_collector)
        observer.record_get("stock:1", True)
        observer.record_get("stock:2", False)

        assert observer.get_stats()["hit_rate"] == 0.5
        mock_metrics_collector.record_cache_hit.assert_called_once_with("stock")
        mock_metrics_collector.record_cache_miss.assert_called_once_with("stock")
