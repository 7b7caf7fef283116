"""
Queue Worker

Pulls jobs from one queue and hands them to the queue's processor.

Architecture:
    QueueWorker (Public API)
        ├── JobRunner (one attempt: processor call, completion/failure, metrics)
        └── ConsumerSlot x N (poll loop: promote delayed, claim, throttle, run)

Flow per slot:
    0. Every ``stall_check_interval`` seconds, recover attempts that stalled
       (a crashed worker, or one cancelled at shutdown)
    1. Promote delayed jobs that are due
    2. Claim the highest-priority waiting job (ZPOPMAX)
    3. Wait on the queue rate limiter, if the queue has one
    4. Run the processor with the job id bound to the log context
    5. Complete, or record the failure and let the queue reschedule it

Cancellation is attempt-based: stop() lets in-flight attempts finish, up to
the shutdown timeout, and then cancels them.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from src.core.config.constants import Stage
from src.core.logging.logger import clear_job_id, get_logger, set_job_id
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter

from .job import Job
from .job_queue import JobQueue

logger = get_logger(__name__)

JobProcessor = Callable[[Job], Awaitable[Any]]


class JobRunner:
    """Runs one attempt of a job and records its outcome."""

    def __init__(self, queue: JobQueue, processor: JobProcessor, metrics=None):
        self._queue = queue
        self._processor = processor
        self._metrics = metrics

    async def run(self, job: Job) -> bool:
        """
        Returns:
            True if the attempt succeeded
        """
        set_job_id(job.id)
        started = time.monotonic()
        try:
            try:
                result = await self._processor(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                duration = time.monotonic() - started
                will_retry = await self._queue.fail(job, e)
                if self._metrics is not None:
                    self._metrics.record_job_failed(
                        self._queue.name, job.name, duration, final=not will_retry
                    )
                return False

            duration = time.monotonic() - started
            await self._queue.complete(job, result)
            if self._metrics is not None:
                self._metrics.record_job_completed(self._queue.name, job.name, duration)
            logger.info(
                "Job completed",
                stage=Stage.QUEUE.value,
                queue=self._queue.name,
                job_name=job.name,
                duration_ms=round(duration * 1000, 1),
            )
            return True
        finally:
            clear_job_id()


class QueueWorker:
    """
    Usage:
        worker = QueueWorker(queue, processor, concurrency=5)
        await worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: JobProcessor,
        concurrency: int | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        poll_interval: float = 0.5,
        error_backoff: float = 5.0,
        shutdown_timeout: float = 30.0,
        stall_check_interval: float = 30.0,
        metrics=None,
    ):
        self._queue = queue
        self._runner = JobRunner(queue, processor, metrics)
        self.concurrency = concurrency or queue.config.concurrency
        self._rate_limiter = rate_limiter
        self._poll_interval = poll_interval
        self._error_backoff = error_backoff
        self._shutdown_timeout = shutdown_timeout
        self._stall_check_interval = stall_check_interval
        self._last_stall_check = float("-inf")
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def name(self) -> str:
        return self._queue.name

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._shutdown_event.clear()
        self._tasks = [
            asyncio.create_task(self._slot(i), name=f"{self.name}-slot-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(
            "Queue worker started",
            stage=Stage.QUEUE.value,
            queue=self.name,
            concurrency=self.concurrency,
            rate_limited=self._rate_limiter is not None,
        )

    async def stop(self) -> None:
        """Stop claiming jobs and wait for in-flight attempts."""
        if not self._running:
            return
        self._running = False
        self._shutdown_event.set()

        if self._tasks:
            _, pending = await asyncio.wait(self._tasks, timeout=self._shutdown_timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        logger.info("Queue worker stopped", stage=Stage.QUEUE.value, queue=self.name)

    async def process_once(self) -> bool:
        """
        Promote, claim and run at most one job.

        Returns:
            True if a job was run
        """
        now = time.monotonic()
        if now - self._last_stall_check >= self._stall_check_interval:
            self._last_stall_check = now
            await self._queue.recover_stalled()
        await self._queue.promote_delayed()
        job = await self._queue.fetch_next()
        if job is None:
            return False
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()
        await self._runner.run(job)
        return True

    async def drain(self, max_jobs: int = 1000) -> int:
        """Run jobs until none are ready. Returns how many ran."""
        ran = 0
        while ran < max_jobs and await self.process_once():
            ran += 1
        return ran

    async def _slot(self, index: int) -> None:
        while self._running and not self._shutdown_event.is_set():
            try:
                if not await self.process_once():
                    await self._idle(self._poll_interval)
            except asyncio.CancelledError:
                logger.info("Queue worker slot cancelled", queue=self.name, slot=index)
                break
            except Exception as e:
                logger.error(
                    "Queue worker loop error, backing off",
                    stage=Stage.QUEUE.value,
                    queue=self.name,
                    slot=index,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                await self._idle(self._error_backoff)

    async def _idle(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
