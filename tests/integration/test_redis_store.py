"""
Integration Tests for the Redis-backed Store

Run with: pytest -m integration
"""

import uuid

import pytest

from src.core.exceptions import CacheConnectionError
from src.infrastructure.cache.redis_client import RedisClient
from src.infrastructure.lock.distributed_lock import DistributedLock
from src.infrastructure.queue.job import QueueConfig
from src.infrastructure.queue.job_queue import JobQueue


@pytest.fixture
async def redis_store():
    client = RedisClient()
    try:
        await client.connect()
    except CacheConnectionError:
        pytest.skip("Redis not available")

    yield client

    await client.disconnect()


@pytest.fixture
def prefix():
    return f"it:{uuid.uuid4().hex[:8]}:"


@pytest.fixture
async def cleanup(redis_store, prefix):
    yield
    keys = await redis_store.scan_keys(f"{prefix}*") + await redis_store.scan_keys(f"queue:{prefix}*")
    if keys:
        await redis_store.delete(*keys)


@pytest.mark.integration
class TestRedisStore:
    async def test_set_nx_claims_once(self, redis_store, prefix, cleanup):
        key = f"{prefix}claim"

        assert await redis_store.set(key, "a", ex=30, nx=True) is True
        assert await redis_store.set(key, "b", ex=30, nx=True) is False
        assert await redis_store.get(key) == "a"
        assert 0 < await redis_store.ttl(key) <= 30

    async def test_delete_if_equals(self, redis_store, prefix, cleanup):
        key = f"{prefix}owned"
        await redis_store.set(key, "token-1", ex=30)

        assert await redis_store.delete_if_equals(key, "token-2") is False
        assert await redis_store.delete_if_equals(key, "token-1") is True
        assert await redis_store.exists(key) == 0

    async def test_lock_is_exclusive(self, redis_store, prefix, cleanup):
        first = DistributedLock(redis_store, prefix=f"{prefix}lock:")
        second = DistributedLock(redis_store, prefix=f"{prefix}lock:")

        token = await first.acquire("store-1", ttl=30)
        assert token is not None
        assert await second.acquire("store-1", ttl=30) is None
        assert not await second.release("store-1", "not-the-owner")

        assert await first.release("store-1", token)
        token = await second.acquire("store-1", ttl=30)
        assert token is not None
        await second.release("store-1", token)


@pytest.mark.integration
class TestRedisJobQueue:
    async def test_priority_then_fifo(self, redis_store, prefix, cleanup):
        queue = JobQueue(redis_store, QueueConfig(name=f"{prefix}q"))
        await queue.add("low", priority=1)
        await queue.add("high-1", priority=10)
        await queue.add("high-2", priority=10)

        order = []
        for _ in range(3):
            job = await queue.fetch_next()
            order.append(job.name)
            await queue.complete(job)

        assert order == ["high-1", "high-2", "low"]
        counts = await queue.counts()
        assert counts["completed"] == 3
        assert counts["waiting"] == 0
