"""
Job Model and Queue Defaults

A job is the persisted record of one unit of queued work. Records are stored
as JSON in the queue's job hash; the sorted sets only hold ids.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from src.core.config.constants import (
    PRIORITY_CRITICAL_STOCK,
    PRIORITY_STOCK_DELTA,
    BackoffType,
    JobState,
    QueueName,
)


class BackoffSpec(BaseModel):
    """Delay between attempts. ``delay`` is in seconds."""

    type: BackoffType = BackoffType.EXPONENTIAL
    delay: float = Field(default=1.0, ge=0)

    def delay_for(self, attempts_made: int) -> float:
        if self.type == BackoffType.FIXED:
            return self.delay
        return self.delay * (2 ** max(attempts_made - 1, 0))


class Job(BaseModel):
    id: str
    queue: str
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    seq: int = 0
    attempts_made: int = 0
    max_attempts: int = Field(default=3, ge=1)
    backoff: BackoffSpec = Field(default_factory=BackoffSpec)
    state: JobState = JobState.WAITING
    created_at: float
    processed_at: float | None = None
    finished_at: float | None = None
    failed_reason: str | None = None
    return_value: Any = None


@dataclass(frozen=True)
class QueueConfig:
    """
    Per-queue defaults.

    Attributes:
        priority: Default job priority (higher is dequeued first)
        attempts: Default max attempts
        backoff: Default backoff between attempts
        concurrency: Simultaneous jobs per worker process
        rate_limit: Max jobs started per ``rate_window`` seconds, None for unlimited
        keep_completed / keep_failed: Max finished records retained
        stall_timeout: Seconds an attempt may stay active before it is treated
            as lost (worker crash or cancelled shutdown) and retried
    """

    name: str
    priority: int = 0
    attempts: int = 3
    backoff: BackoffSpec = field(default_factory=BackoffSpec)
    concurrency: int = 5
    rate_limit: int | None = None
    rate_window: float = 60.0
    keep_completed: int = 100
    keep_failed: int = 50
    stall_timeout: float = 900.0


QUEUE_DEFAULTS: dict[str, QueueConfig] = {
    QueueName.CRITICAL_STOCK.value: QueueConfig(
        name=QueueName.CRITICAL_STOCK.value,
        priority=PRIORITY_CRITICAL_STOCK,
        attempts=10,
        backoff=BackoffSpec(type=BackoffType.FIXED, delay=0.5),
        keep_completed=50,
        keep_failed=10,
    ),
    QueueName.STOCK_SYNC.value: QueueConfig(
        name=QueueName.STOCK_SYNC.value,
        priority=PRIORITY_STOCK_DELTA,
        attempts=5,
        backoff=BackoffSpec(type=BackoffType.EXPONENTIAL, delay=1.0),
        rate_limit=200,
    ),
    QueueName.ERP_SYNC.value: QueueConfig(
        name=QueueName.ERP_SYNC.value,
        attempts=3,
        backoff=BackoffSpec(type=BackoffType.EXPONENTIAL, delay=2.0),
        rate_limit=100,
    ),
    QueueName.POS_SYNC.value: QueueConfig(
        name=QueueName.POS_SYNC.value,
        attempts=3,
        backoff=BackoffSpec(type=BackoffType.EXPONENTIAL, delay=2.0),
        concurrency=2,
        stall_timeout=1800.0,
    ),
    QueueName.NOTIFICATION.value: QueueConfig(
        name=QueueName.NOTIFICATION.value,
        attempts=5,
        backoff=BackoffSpec(type=BackoffType.EXPONENTIAL, delay=3.0),
        keep_completed=50,
        keep_failed=20,
    ),
}
