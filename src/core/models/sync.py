"""
Sync Job and Sync Status Models
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from src.core.config.constants import (
    POS_DEFAULT_BATCH_SIZE,
    POS_MAX_BATCH_SIZE,
    SyncJobType,
    SyncStatusState,
)


class SyncJobOptions(BaseModel):
    """Options accepted by resource sync jobs."""

    batch_size: int = Field(default=POS_DEFAULT_BATCH_SIZE, gt=0, le=POS_MAX_BATCH_SIZE)
    force: bool = False
    offset: int = Field(default=0, ge=0)
    limit: int | None = Field(default=None, gt=0)


class SyncJob(BaseModel):
    """
    A unit of synchronization work for one external resource (a POS store).

    Created by the scheduler, a manual trigger or the admin API; carried as the
    payload of a queued job.
    """

    type: SyncJobType
    resource_id: str = Field(..., min_length=1)
    priority: int = 0
    options: SyncJobOptions = Field(default_factory=SyncJobOptions)


class SyncStatus(BaseModel):
    """
    Per-resource synchronization status.

    Only the worker holding the resource lock mutates it.
    """

    resource_id: str
    status: SyncStatusState = SyncStatusState.IDLE
    last_product_sync: datetime | None = None
    last_stock_sync: datetime | None = None
    products_synced: int = 0
    stock_synced: int = 0
    error_count: int = 0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def last_sync(self) -> datetime | None:
        candidates = [d for d in (self.last_product_sync, self.last_stock_sync) if d is not None]
        return max(candidates) if candidates else None

    def merged(self, **changes: Any) -> "SyncStatus":
        """Copy with ``changes`` applied and ``updated_at`` refreshed."""
        changes.setdefault("updated_at", datetime.now(timezone.utc))
        return self.model_copy(update=changes)
