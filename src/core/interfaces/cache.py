"""
Key-Value Store Protocol

This module defines the abstract protocol for the shared key-value store that
backs the cache layer, the distributed lock and the priority job queues.

Architectural Decision: Protocol-based abstraction
- Production uses Redis (``RedisClient``); tests use an in-memory fake
- Correctness relies only on per-key atomicity: set-if-absent, increment,
  sorted-set pop and compare-and-delete. No multi-key transactions.
- ``set_many`` is pipelined for throughput only; callers tolerate partial failure

Author: System Architect
Date: 2025-12-08
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Protocol defining the interface for key-value store implementations.

    Implementations:
    - RedisClient: Production Redis-backed store
    - InMemoryStore (tests): dict-backed fake with a controllable clock

    Usage:
        async def warm(store: KeyValueStore) -> None:
            await store.set("stock:42", payload, ex=30)
    """

    async def ping(self) -> bool:
        """Return True when the store answers."""
        ...

    # -------------------------------------------------------------------------
    # Strings
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Get value, or None if absent or expired."""
        ...

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        """
        Set value with optional TTL.

        Args:
            ex: Time-to-live in seconds
            nx: Only set if the key does not exist

        Returns:
            True if the value was written
        """
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        ...

    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically delete ``key`` only when it currently holds ``value``."""
        ...

    async def exists(self, *keys: str) -> int:
        """Number of the given keys that exist."""
        ...

    async def expire(self, key: str, ttl: int) -> bool:
        """Set TTL on an existing key."""
        ...

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds, -1 if no TTL, -2 if the key does not exist."""
        ...

    async def incr(self, key: str) -> int:
        """Atomically increment an integer counter."""
        ...

    async def mget(self, keys: list[str]) -> list[str | None]:
        """Get many values in one round trip, preserving order."""
        ...

    async def set_many(self, mapping: dict[str, str], ex: int | None = None) -> None:
        """Pipelined SET of many keys sharing one TTL."""
        ...

    async def scan_keys(self, pattern: str) -> list[str]:
        """All keys matching a glob pattern."""
        ...

    # -------------------------------------------------------------------------
    # Sorted sets (queues)
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        """Add members with scores."""
        ...

    async def zpopmax(self, key: str, count: int = 1) -> list[tuple[str, float]]:
        """Atomically pop the highest-scored members."""
        ...

    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, limit: int | None = None
    ) -> list[str]:
        """Members with scores in [min_score, max_score], ascending."""
        ...

    async def zrange(self, key: str, start: int, end: int) -> list[str]:
        """Members by ascending rank, inclusive bounds (negative indexes allowed)."""
        ...

    async def zrem(self, key: str, *members: str) -> int:
        """Remove members, returning how many were present."""
        ...

    async def zcard(self, key: str) -> int:
        """Number of members."""
        ...

    async def zscore(self, key: str, member: str) -> float | None:
        """Score of a member or None."""
        ...

    # -------------------------------------------------------------------------
    # Hashes (job records)
    # -------------------------------------------------------------------------

    async def hset(self, name: str, key: str, value: str) -> int:
        """Set a hash field."""
        ...

    async def hget(self, name: str, key: str) -> str | None:
        """Get a hash field."""
        ...

    async def hdel(self, name: str, *keys: str) -> int:
        """Delete hash fields."""
        ...

    async def hgetall(self, name: str) -> dict[str, str]:
        """All fields of a hash."""
        ...

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    async def info_memory(self) -> dict[str, Any]:
        """Memory statistics (``used_memory_human`` at least)."""
        ...
