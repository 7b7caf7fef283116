"""
Distributed Lock

Short-lived mutual exclusion between worker processes, keyed by resource.

Architectural Decision: SET NX EX with an owner token
- Acquire writes a random token only when the key is absent, with a TTL so a
  crashed holder can never block a resource forever
- Release deletes the key only if it still holds our token, so a holder whose
  TTL expired cannot release a lock another worker has since acquired
- No fencing, no re-entrancy. A holder that outlives its TTL loses exclusivity.

Author: System Architect
Date: 2025-12-13
"""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from src.core.config.constants import KEY_LOCK, Stage
from src.core.exceptions import CacheError, LockUnavailableError
from src.core.interfaces.cache import KeyValueStore
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class DistributedLock:
    """
    Usage:
        lock = DistributedLock(store, prefix="pos:lock:")
        async with lock.hold("store-01", ttl=600):
            await sync_store()

    One instance may be shared by every job slot of a worker: the owner token
    lives with the caller, never on the instance.
    """

    def __init__(self, store: KeyValueStore, prefix: str = KEY_LOCK, default_ttl: int = 60):
        self._store = store
        self.prefix = prefix
        self.default_ttl = default_ttl

    def key(self, resource: str) -> str:
        return f"{self.prefix}{resource}"

    async def acquire(self, resource: str, ttl: int | None = None) -> str | None:
        """
        Try once to take the lock. Never waits.

        Returns:
            The owner token to pass to ``release``, or None when the lock is held
        """
        token = uuid.uuid4().hex
        ttl = ttl or self.default_ttl
        try:
            acquired = await self._store.set(self.key(resource), token, ex=ttl, nx=True)
        except CacheError as e:
            logger.error(
                "Lock acquire failed", stage=Stage.LOCK.value, resource=resource, error=str(e)
            )
            return None

        if not acquired:
            logger.info("Lock busy", stage=Stage.LOCK.value, resource=resource)
            return None
        logger.debug("Lock acquired", stage=Stage.LOCK.value, resource=resource, ttl=ttl)
        return token

    async def release(self, resource: str, token: str | None) -> bool:
        """
        Release a lock taken with ``token``.

        Returns:
            False when the key no longer holds ``token`` (expired and taken by
            another holder, or never acquired)
        """
        if token is None:
            return False
        try:
            released = await self._store.delete_if_equals(self.key(resource), token)
        except CacheError as e:
            logger.error(
                "Lock release failed", stage=Stage.LOCK.value, resource=resource, error=str(e)
            )
            return False

        if not released:
            logger.warning(
                "Lock expired before release", stage=Stage.LOCK.value, resource=resource
            )
        return released

    async def is_locked(self, resource: str) -> bool:
        try:
            return await self._store.exists(self.key(resource)) > 0
        except CacheError:
            return False

    @asynccontextmanager
    async def hold(self, resource: str, ttl: int | None = None) -> AsyncIterator[None]:
        """
        Hold the lock for the duration of the block.

        Raises:
            LockUnavailableError: Another holder has the lock
        """
        token = await self.acquire(resource, ttl)
        if token is None:
            raise LockUnavailableError(
                f"Resource {resource} is locked by another worker",
                details={"resource": resource, "lock_key": self.key(resource)},
            )
        try:
            yield
        finally:
            await self.release(resource, token)
