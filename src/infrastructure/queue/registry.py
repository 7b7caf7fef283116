"""
Queue and Processor Registries

Architectural Decision: explicit registration from the composition root
- ``ProcessorRegistry.register_processor`` is called once per queue at startup,
  never as an import side effect
- ``QueueRegistry`` owns one ``JobQueue`` per configured queue over an injected
  ``KeyValueStore`` so tests can run the whole pipeline on an in-memory fake
"""

from collections.abc import Iterable

from src.core.config.constants import JobState, Stage
from src.core.exceptions import JobProcessorNotFoundError, UnknownQueueError
from src.core.interfaces.cache import KeyValueStore
from src.core.logging.logger import get_logger
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter

from .job import QUEUE_DEFAULTS, BackoffSpec, Job, QueueConfig
from .job_queue import JobQueue
from .worker import JobProcessor, QueueWorker

logger = get_logger(__name__)


class ProcessorRegistry:
    def __init__(self):
        self._processors: dict[str, JobProcessor] = {}

    def register_processor(self, queue_name: str, handler: JobProcessor) -> None:
        if queue_name in self._processors:
            logger.warning("Replacing queue processor", stage=Stage.QUEUE.value, queue=queue_name)
        self._processors[queue_name] = handler

    def get(self, queue_name: str) -> JobProcessor:
        try:
            return self._processors[queue_name]
        except KeyError:
            raise JobProcessorNotFoundError(
                f"No processor registered for queue {queue_name}",
                details={"queue": queue_name, "registered": sorted(self._processors)},
            ) from None

    def names(self) -> list[str]:
        return sorted(self._processors)


class QueueRegistry:
    """
    Usage:
        queues = QueueRegistry(store)
        await queues.add("critical-stock", "alert-zero-stock", {...}, priority=30)
        stats = await queues.get_queue_stats()
    """

    def __init__(
        self,
        store: KeyValueStore,
        configs: Iterable[QueueConfig] | None = None,
        completed_max_age: float = 24 * 3600,
        failed_max_age: float = 7 * 24 * 3600,
        metrics=None,
    ):
        self._store = store
        self._metrics = metrics
        self.completed_max_age = completed_max_age
        self.failed_max_age = failed_max_age
        configs = list(configs) if configs is not None else list(QUEUE_DEFAULTS.values())
        self._queues: dict[str, JobQueue] = {c.name: JobQueue(store, c) for c in configs}

    def names(self) -> list[str]:
        return list(self._queues)

    def get(self, queue_name: str) -> JobQueue:
        try:
            return self._queues[queue_name]
        except KeyError:
            raise UnknownQueueError(
                f"Unknown queue {queue_name}",
                details={"queue": queue_name, "known": list(self._queues)},
            ) from None

    async def add(
        self,
        queue_name: str,
        name: str,
        data: dict | None = None,
        priority: int | None = None,
        attempts: int | None = None,
        backoff: BackoffSpec | None = None,
        delay: float = 0.0,
        job_id: str | None = None,
    ) -> Job:
        return await self.get(queue_name).add(
            name,
            data,
            priority=priority,
            attempts=attempts,
            backoff=backoff,
            delay=delay,
            job_id=job_id,
        )

    async def get_queue_stats(self) -> dict[str, dict[str, int]]:
        stats = {}
        for name, queue in self._queues.items():
            stats[name] = await queue.counts()
            if self._metrics is not None:
                self._metrics.record_queue_depth(name, stats[name])
        return stats

    async def clean_queues(self) -> dict[str, int]:
        """Evict completed and failed jobs past their max age."""
        removed = {}
        for name, queue in self._queues.items():
            completed = await queue.clean(self.completed_max_age, JobState.COMPLETED)
            failed = await queue.clean(self.failed_max_age, JobState.FAILED)
            removed[name] = len(completed) + len(failed)
        logger.info("Queues cleaned", stage=Stage.QUEUE.value, removed=removed)
        return removed

    async def close_queues(self) -> None:
        for queue in self._queues.values():
            await queue.close()

    def create_workers(
        self,
        processors: ProcessorRegistry,
        concurrency: dict[str, int] | None = None,
        poll_interval: float = 0.5,
    ) -> list[QueueWorker]:
        """One worker per queue that has a registered processor."""
        concurrency = concurrency or {}
        workers = []
        for name, queue in self._queues.items():
            if name not in processors.names():
                logger.warning("Queue has no processor, not consuming", stage=Stage.QUEUE.value, queue=name)
                continue

            limiter = None
            if queue.config.rate_limit is not None:
                limiter = SlidingWindowRateLimiter(
                    f"queue:{name}",
                    queue.config.rate_limit,
                    queue.config.rate_window,
                    on_wait=self._metrics.record_rate_limit_wait if self._metrics else None,
                )
            workers.append(
                QueueWorker(
                    queue,
                    processors.get(name),
                    concurrency=concurrency.get(name),
                    rate_limiter=limiter,
                    poll_interval=poll_interval,
                    metrics=self._metrics,
                )
            )
        return workers
