"""
Redis Client with Connection Pooling

Production implementation of the ``KeyValueStore`` protocol. The same pool
serves the cache layer, the distributed lock and the job queues.

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle)
        ├── OperationExecutor (Command execution with error handling)
        └── HealthMonitor (Health checks and pool metrics)

Author: System Architect
Date: 2025-12-13
"""

import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from src.core.config.constants import Stage
from src.core.config.settings import get_settings
from src.core.exceptions import CacheConnectionError, CacheKeyError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

# Compare-and-delete: only the holder of the token may remove the key
_DELETE_IF_EQUALS_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Pool Configuration:
    - Max connections: REDIS_MAX_CONNECTIONS
    - Socket timeout: REDIS_SOCKET_TIMEOUT
    - Health check interval: REDIS_HEALTH_CHECK_INTERVAL
    - Decode responses: strings, not bytes
    """

    def __init__(self, settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Raises:
            CacheConnectionError: If connection fails
        """
        if self._is_connected and self._client:
            return self._client

        redis_settings = self._settings.redis
        try:
            self._pool = ConnectionPool.from_url(
                redis_settings.REDIS_URL,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            self._is_connected = True

            logger.info(
                "Redis connected successfully",
                stage="REDIS.2",
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
            )
            return self._client

        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={"url": redis_settings.REDIS_URL},
            ) from e

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._is_connected = False
        logger.info("Redis disconnected", stage="REDIS.3")

    async def ping(self) -> bool:
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTION
# =============================================================================


class OperationExecutor:
    """
    Executes Redis commands and maps ``RedisError`` to ``CacheKeyError``.

    Every failure is logged with the command as stage so a misbehaving key is
    easy to find.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client
        self._delete_if_equals = redis_client.register_script(_DELETE_IF_EQUALS_SCRIPT)

    async def _run(self, command: str, coro, **context) -> Any:
        try:
            return await coro
        except RedisError as e:
            logger.error(
                f"Redis {command} failed", stage=f"REDIS.{command}", error=str(e), **context
            )
            raise CacheKeyError(
                message=f"Redis {command} failed: {e}", details=context
            ) from e

    # -------------------------------------------------------------------------
    # Strings
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self._run("GET", self._redis.get(key), key=key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        result = await self._run("SET", self._redis.set(key, value, ex=ex, nx=nx), key=key)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._run("DEL", self._redis.delete(*keys), keys=list(keys))

    async def delete_if_equals(self, key: str, value: str) -> bool:
        result = await self._run(
            "DELIFEQ", self._delete_if_equals(keys=[key], args=[value]), key=key
        )
        return bool(result)

    async def exists(self, *keys: str) -> int:
        return await self._run("EXISTS", self._redis.exists(*keys), keys=list(keys))

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._run("EXPIRE", self._redis.expire(key, ttl), key=key))

    async def ttl(self, key: str) -> int:
        return await self._run("TTL", self._redis.ttl(key), key=key)

    async def incr(self, key: str) -> int:
        return await self._run("INCR", self._redis.incr(key), key=key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return await self._run("MGET", self._redis.mget(keys), count=len(keys))

    async def set_many(self, mapping: dict[str, str], ex: int | None = None) -> None:
        if not mapping:
            return
        pipe = self._redis.pipeline(transaction=False)
        for key, value in mapping.items():
            pipe.set(key, value, ex=ex)
        await self._run("PIPELINE_SET", pipe.execute(), count=len(mapping))

    async def scan_keys(self, pattern: str) -> list[str]:
        async def collect():
            return [key async for key in self._redis.scan_iter(match=pattern, count=500)]

        return await self._run("SCAN", collect(), pattern=pattern)

    # -------------------------------------------------------------------------
    # Sorted sets
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        return await self._run("ZADD", self._redis.zadd(key, mapping), key=key)

    async def zpopmax(self, key: str, count: int = 1) -> list[tuple[str, float]]:
        result = await self._run("ZPOPMAX", self._redis.zpopmax(key, count), key=key)
        return [(member, float(score)) for member, score in result]

    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, limit: int | None = None
    ) -> list[str]:
        kwargs = {"start": 0, "num": limit} if limit is not None else {}
        return await self._run(
            "ZRANGEBYSCORE",
            self._redis.zrangebyscore(key, min_score, max_score, **kwargs),
            key=key,
        )

    async def zrange(self, key: str, start: int, end: int) -> list[str]:
        return await self._run("ZRANGE", self._redis.zrange(key, start, end), key=key)

    async def zrem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return await self._run("ZREM", self._redis.zrem(key, *members), key=key)

    async def zcard(self, key: str) -> int:
        return await self._run("ZCARD", self._redis.zcard(key), key=key)

    async def zscore(self, key: str, member: str) -> float | None:
        return await self._run("ZSCORE", self._redis.zscore(key, member), key=key)

    # -------------------------------------------------------------------------
    # Hashes
    # -------------------------------------------------------------------------

    async def hset(self, name: str, key: str, value: str) -> int:
        return await self._run("HSET", self._redis.hset(name, key, value), name=name, key=key)

    async def hget(self, name: str, key: str) -> str | None:
        return await self._run("HGET", self._redis.hget(name, key), name=name, key=key)

    async def hdel(self, name: str, *keys: str) -> int:
        if not keys:
            return 0
        return await self._run("HDEL", self._redis.hdel(name, *keys), name=name)

    async def hgetall(self, name: str) -> dict[str, str]:
        return await self._run("HGETALL", self._redis.hgetall(name), name=name)

    async def info_memory(self) -> dict[str, Any]:
        return await self._run("INFO", self._redis.info("memory"))


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Monitors Redis health and connection pool metrics.

    Metrics Tracked:
    - Connection status
    - Ping latency
    - Pool size and utilization (warning above 80%)
    """

    def __init__(self, connection_manager: ConnectionManager):
        self._conn_mgr = connection_manager

    async def health_check(self) -> dict[str, Any]:
        """
        STAGE-REDIS.HEALTH: Redis health check
        """
        health = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "pool_size": 0,
            "pool_utilization_pct": 0,
            "pool_warning": False,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)
            return health

        pool = self._conn_mgr.get_pool()
        if pool and hasattr(pool, "_available_connections"):
            health["pool_size"] = pool.max_connections
            available = len(pool._available_connections)
            utilization = 100.0 * (pool.max_connections - available) / pool.max_connections
            health["pool_utilization_pct"] = round(utilization, 1)
            if utilization > 80:
                health["pool_warning"] = True
                logger.warning(
                    "Redis pool utilization high",
                    stage=Stage.CACHE.value,
                    pool_utilization=utilization,
                )

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis client implementing ``KeyValueStore``.

    Usage:
        client = RedisClient()
        await client.connect()
        await client.set("stock:42", payload, ex=30)
        await client.disconnect()
    """

    def __init__(self):
        """
        STAGE-REDIS.1: Client initialization
        """
        self._settings = get_settings()
        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr)

    async def connect(self) -> None:
        client = await self._conn_mgr.connect()
        self._executor = OperationExecutor(client)

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()
        self._executor = None

    async def ping(self) -> bool:
        return await self._conn_mgr.ping()

    @property
    def executor(self) -> OperationExecutor:
        if self._executor is None:
            raise CacheConnectionError("Redis client is not connected")
        return self._executor

    async def get(self, key: str) -> str | None:
        return await self.executor.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        return await self.executor.set(key, value, ex=ex, nx=nx)

    async def delete(self, *keys: str) -> int:
        return await self.executor.delete(*keys)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        return await self.executor.delete_if_equals(key, value)

    async def exists(self, *keys: str) -> int:
        return await self.executor.exists(*keys)

    async def expire(self, key: str, ttl: int) -> bool:
        return await self.executor.expire(key, ttl)

    async def ttl(self, key: str) -> int:
        return await self.executor.ttl(key)

    async def incr(self, key: str) -> int:
        return await self.executor.incr(key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        return await self.executor.mget(keys)

    async def set_many(self, mapping: dict[str, str], ex: int | None = None) -> None:
        await self.executor.set_many(mapping, ex=ex)

    async def scan_keys(self, pattern: str) -> list[str]:
        return await self.executor.scan_keys(pattern)

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        return await self.executor.zadd(key, mapping)

    async def zpopmax(self, key: str, count: int = 1) -> list[tuple[str, float]]:
        return await self.executor.zpopmax(key, count)

    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, limit: int | None = None
    ) -> list[str]:
        return await self.executor.zrangebyscore(key, min_score, max_score, limit=limit)

    async def zrange(self, key: str, start: int, end: int) -> list[str]:
        return await self.executor.zrange(key, start, end)

    async def zrem(self, key: str, *members: str) -> int:
        return await self.executor.zrem(key, *members)

    async def zcard(self, key: str) -> int:
        return await self.executor.zcard(key)

    async def zscore(self, key: str, member: str) -> float | None:
        return await self.executor.zscore(key, member)

    async def hset(self, name: str, key: str, value: str) -> int:
        return await self.executor.hset(name, key, value)

    async def hget(self, name: str, key: str) -> str | None:
        return await self.executor.hget(name, key)

    async def hdel(self, name: str, *keys: str) -> int:
        return await self.executor.hdel(name, *keys)

    async def hgetall(self, name: str) -> dict[str, str]:
        return await self.executor.hgetall(name)

    async def info_memory(self) -> dict[str, Any]:
        return await self.executor.info_memory()

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_redis_client: RedisClient | None = None


def get_redis_client() -> RedisClient:
    """Get the global Redis client instance (singleton)."""
    global _redis_client

    if _redis_client is None:
        _redis_client = RedisClient()

    return _redis_client

