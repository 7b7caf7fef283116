"""
Sync Status Cache

Holds one ``SyncStatus`` per resource under ``sync:status:{resource_id}``.
Reads create the default (idle) status when none exists. Writes merge.
"""

from typing import Any

from pydantic import ValidationError

from src.core.config.constants import KEY_SYNC_STATUS
from src.core.logging.logger import get_logger
from src.core.models.sync import SyncStatus
from src.infrastructure.cache.cache_manager import CacheManager

logger = get_logger(__name__)


class SyncStatusCache:
    def __init__(self, cache: CacheManager, ttl: int = 30 * 60):
        self._cache = cache
        self.ttl = ttl

    @staticmethod
    def key(resource_id: str) -> str:
        return f"{KEY_SYNC_STATUS}{resource_id}"

    async def get(self, resource_id: str) -> SyncStatus | None:
        raw = await self._cache.get(self.key(resource_id))
        if raw is None:
            return None
        try:
            return SyncStatus.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding malformed sync status", stage="C.1", resource_id=resource_id, error=str(e)
            )
            return None

    async def save(self, status: SyncStatus) -> SyncStatus:
        await self._cache.set(self.key(status.resource_id), status.model_dump(mode="json"), self.ttl)
        return status

    async def get_or_create(self, resource_id: str) -> SyncStatus:
        status = await self.get(resource_id)
        if status is None:
            status = await self.save(SyncStatus(resource_id=resource_id))
        return status

    async def update(self, resource_id: str, **changes: Any) -> SyncStatus:
        current = await self.get_or_create(resource_id)
        return await self.save(current.merged(**changes))

    async def reset_errors(self, resource_id: str) -> SyncStatus:
        return await self.update(resource_id, error_count=0)
