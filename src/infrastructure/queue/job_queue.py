"""
Priority Job Queue

Architecture:
    JobQueue (Public API)
        ├── JobStore (job records in a hash, JSON-encoded)
        └── KeyValueStore sorted sets per state

Key layout (``Q`` = queue name):
    queue:Q:jobs       hash    id -> job JSON
    queue:Q:seq        counter insertion sequence
    queue:Q:waiting    zset    score = priority - seq * 1e-9 (ZPOPMAX = highest
                               priority, FIFO within a priority)
    queue:Q:delayed    zset    score = epoch when the job becomes ready
    queue:Q:active     zset    score = epoch the attempt started
    queue:Q:completed  zset    score = epoch finished
    queue:Q:failed     zset    score = epoch finished

Architectural Decision: per-key atomic primitives only
- ZPOPMAX hands a waiting job to exactly one consumer
- Delayed promotion uses ZREM as the claim: only the caller whose ZREM removed
  the member re-adds it to the waiting set
- Finished jobs are trimmed by count on every finish and by age in ``clean``
- An attempt active longer than the stall timeout is recovered as a failed
  attempt; ZREM on the active set is the claim, so a stalled job is recovered
  once and a late finish of the lost attempt is not recorded twice

Author: System Architect
Date: 2025-12-13
"""

import time
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from src.core.config.constants import KEY_QUEUE, JobState, Stage
from src.core.exceptions import JobStalledError, QueueError
from src.core.interfaces.cache import KeyValueStore
from src.core.logging.logger import get_logger, log_stage

from .job import BackoffSpec, Job, QueueConfig

logger = get_logger(__name__)

_SEQ_SCALE = 1e-9


# =============================================================================
# LAYER 1: JOB RECORDS
# =============================================================================


class JobStore:
    """Loads and saves job records in the queue's hash."""

    def __init__(self, store: KeyValueStore, hash_key: str):
        self._store = store
        self._hash_key = hash_key

    async def save(self, job: Job) -> None:
        await self._store.hset(self._hash_key, job.id, job.model_dump_json())

    async def load(self, job_id: str) -> Job | None:
        raw = await self._store.hget(self._hash_key, job_id)
        if raw is None:
            return None
        try:
            return Job.model_validate_json(raw)
        except ValidationError as e:
            logger.error(
                "Corrupt job record", stage=Stage.QUEUE.value, job_id=job_id, error=str(e)
            )
            return None

    async def remove(self, *job_ids: str) -> int:
        return await self._store.hdel(self._hash_key, *job_ids)


# =============================================================================
# LAYER 2: PUBLIC API
# =============================================================================


class JobQueue:
    """
    Usage:
        queue = JobQueue(store, QUEUE_DEFAULTS["stock-sync"])
        await queue.add("sync-stock-delta", {"type": "stock_sync"}, priority=10)
        job = await queue.fetch_next()
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: QueueConfig,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.config = config
        self.name = config.name
        self._clock = clock
        self._closed = False

        prefix = f"{KEY_QUEUE}{self.name}:"
        self._seq_key = f"{prefix}seq"
        self._state_keys = {state: f"{prefix}{state.value}" for state in JobState}
        self._jobs = JobStore(store, f"{prefix}jobs")

    @property
    def closed(self) -> bool:
        return self._closed

    def state_key(self, state: JobState) -> str:
        return self._state_keys[state]

    @staticmethod
    def _waiting_score(job: Job) -> float:
        return job.priority - job.seq * _SEQ_SCALE

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    async def add(
        self,
        name: str,
        data: dict[str, Any] | None = None,
        priority: int | None = None,
        attempts: int | None = None,
        backoff: BackoffSpec | None = None,
        delay: float = 0.0,
        job_id: str | None = None,
    ) -> Job:
        """
        STAGE-Q.1: Enqueue a job

        Omitted options fall back to the queue defaults. Adding a ``job_id``
        that already exists returns the existing job unchanged.

        Raises:
            QueueError: The queue has been closed
        """
        if self._closed:
            raise QueueError(f"Queue {self.name} is closed", details={"queue": self.name})

        if job_id is not None:
            existing = await self._jobs.load(job_id)
            if existing is not None:
                return existing

        now = self._clock()
        job = Job(
            id=job_id or uuid.uuid4().hex,
            queue=self.name,
            name=name,
            data=data or {},
            priority=self.config.priority if priority is None else priority,
            seq=await self._store.incr(self._seq_key),
            max_attempts=attempts or self.config.attempts,
            backoff=backoff or self.config.backoff,
            created_at=now,
        )

        if delay > 0:
            job.state = JobState.DELAYED
            await self._jobs.save(job)
            await self._store.zadd(self.state_key(JobState.DELAYED), {job.id: now + delay})
        else:
            await self._jobs.save(job)
            await self._store.zadd(self.state_key(JobState.WAITING), {job.id: self._waiting_score(job)})

        log_stage(
            logger,
            "Q.1",
            "Job enqueued",
            level="debug",
            queue=self.name,
            job_name=name,
            job_id=job.id,
            priority=job.priority,
            delay=delay,
        )
        return job

    # -------------------------------------------------------------------------
    # Consumer side
    # -------------------------------------------------------------------------

    async def promote_delayed(self) -> int:
        """STAGE-Q.2: Move delayed jobs whose ready time has passed to waiting."""
        delayed_key = self.state_key(JobState.DELAYED)
        due = await self._store.zrangebyscore(delayed_key, float("-inf"), self._clock())
        promoted = 0
        for job_id in due:
            if await self._store.zrem(delayed_key, job_id) != 1:
                continue
            job = await self._jobs.load(job_id)
            if job is None:
                continue
            job.state = JobState.WAITING
            await self._jobs.save(job)
            await self._store.zadd(self.state_key(JobState.WAITING), {job.id: self._waiting_score(job)})
            promoted += 1
        return promoted

    async def fetch_next(self) -> Job | None:
        """
        STAGE-Q.3: Claim the highest-priority waiting job

        Returns:
            The job, now ACTIVE, or None when nothing is waiting
        """
        while True:
            popped = await self._store.zpopmax(self.state_key(JobState.WAITING), 1)
            if not popped:
                return None
            job_id, _ = popped[0]
            job = await self._jobs.load(job_id)
            if job is not None:
                break

        now = self._clock()
        job.state = JobState.ACTIVE
        job.processed_at = now
        await self._jobs.save(job)
        await self._store.zadd(self.state_key(JobState.ACTIVE), {job.id: now})
        return job

    async def complete(self, job: Job, result: Any = None) -> Job:
        """STAGE-Q.4: Mark an active job completed."""
        now = self._clock()
        job.attempts_made += 1
        job.state = JobState.COMPLETED
        job.finished_at = now
        job.return_value = result
        if await self._store.zrem(self.state_key(JobState.ACTIVE), job.id) == 0:
            # recovered as stalled while it ran: this success replaces the retry
            for state in (JobState.DELAYED, JobState.WAITING, JobState.FAILED):
                await self._store.zrem(self.state_key(state), job.id)
        await self._jobs.save(job)
        await self._store.zadd(self.state_key(JobState.COMPLETED), {job.id: now})
        await self._trim(JobState.COMPLETED, self.config.keep_completed)
        return job

    async def fail(self, job: Job, error: BaseException) -> bool:
        """
        STAGE-Q.5: Record a failed attempt

        Reschedules with the job's backoff while attempts remain.

        Returns:
            True if the job will be retried, False if it is now FAILED
        """
        if await self._store.zrem(self.state_key(JobState.ACTIVE), job.id) == 0:
            current = await self._jobs.load(job.id)
            logger.warning(
                "Attempt finished after its job was recovered as stalled",
                stage=Stage.QUEUE.value,
                queue=self.name,
                job_id=job.id,
                error=str(error),
            )
            return current is not None and current.state != JobState.FAILED
        return await self._record_failure(job, error)

    async def _record_failure(self, job: Job, error: BaseException) -> bool:
        now = self._clock()
        job.attempts_made += 1
        job.failed_reason = f"{type(error).__name__}: {error}"

        if job.attempts_made < job.max_attempts:
            delay = job.backoff.delay_for(job.attempts_made)
            job.state = JobState.DELAYED
            await self._jobs.save(job)
            await self._store.zadd(self.state_key(JobState.DELAYED), {job.id: now + delay})
            log_stage(
                logger,
                "Q.5",
                "Job attempt failed, rescheduled",
                level="warning",
                queue=self.name,
                job_name=job.name,
                job_id=job.id,
                attempt=job.attempts_made,
                max_attempts=job.max_attempts,
                retry_in=round(delay, 3),
                error=job.failed_reason,
            )
            return True

        job.state = JobState.FAILED
        job.finished_at = now
        await self._jobs.save(job)
        await self._store.zadd(self.state_key(JobState.FAILED), {job.id: now})
        await self._trim(JobState.FAILED, self.config.keep_failed)
        log_stage(
            logger,
            "Q.5",
            "Job failed permanently",
            level="error",
            queue=self.name,
            job_name=job.name,
            job_id=job.id,
            attempts=job.attempts_made,
            error=job.failed_reason,
        )
        return False

    async def recover_stalled(self, stall_timeout: float | None = None) -> list[str]:
        """
        STAGE-Q.6: Return lost attempts to the retry cycle

        A job active for longer than ``stall_timeout`` (default: the queue's)
        has its attempt counted as failed and is rescheduled with backoff, or
        moved to failed when no attempts remain.

        Returns:
            Ids of recovered jobs
        """
        timeout = self.config.stall_timeout if stall_timeout is None else stall_timeout
        active_key = self.state_key(JobState.ACTIVE)
        stalled = await self._store.zrangebyscore(active_key, float("-inf"), self._clock() - timeout)
        recovered = []
        for job_id in stalled:
            if await self._store.zrem(active_key, job_id) != 1:
                continue
            job = await self._jobs.load(job_id)
            if job is None:
                continue
            await self._record_failure(
                job,
                JobStalledError(
                    f"Job {job_id} was active for more than {timeout:g}s",
                    details={"queue": self.name, "job_id": job_id},
                ),
            )
            recovered.append(job_id)

        if recovered:
            log_stage(
                logger,
                "Q.6",
                "Stalled jobs recovered",
                level="warning",
                queue=self.name,
                count=len(recovered),
            )
        return recovered

    # -------------------------------------------------------------------------
    # Introspection & maintenance
    # -------------------------------------------------------------------------

    async def get_job(self, job_id: str) -> Job | None:
        return await self._jobs.load(job_id)

    async def counts(self) -> dict[str, int]:
        """Jobs per state: waiting, active, completed, failed, delayed."""
        return {state.value: await self._store.zcard(key) for state, key in self._state_keys.items()}

    async def clean(self, age_seconds: float, state: JobState, limit: int | None = None) -> list[str]:
        """
        Remove finished jobs older than ``age_seconds``.

        Returns:
            Ids of removed jobs
        """
        if state not in (JobState.COMPLETED, JobState.FAILED):
            raise QueueError(
                "Only completed or failed jobs can be cleaned",
                details={"queue": self.name, "state": state.value},
            )
        key = self.state_key(state)
        cutoff = self._clock() - age_seconds
        job_ids = await self._store.zrangebyscore(key, float("-inf"), cutoff, limit=limit)
        if job_ids:
            await self._store.zrem(key, *job_ids)
            await self._jobs.remove(*job_ids)
            logger.info(
                "Queue cleaned",
                stage=Stage.QUEUE.value,
                queue=self.name,
                state=state.value,
                removed=len(job_ids),
            )
        return job_ids

    async def _trim(self, state: JobState, keep: int) -> None:
        key = self.state_key(state)
        excess = await self._store.zcard(key) - keep
        if excess <= 0:
            return
        job_ids = await self._store.zrange(key, 0, excess - 1)
        if job_ids:
            await self._store.zrem(key, *job_ids)
            await self._jobs.remove(*job_ids)

    async def close(self) -> None:
        """Stop accepting new jobs. Stored jobs stay in the backing store."""
        self._closed = True
        logger.info("Queue closed", stage=Stage.QUEUE.value, queue=self.name)
