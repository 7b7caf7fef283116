"""
Admin Routes

Job submission and operational views over queues, breakers, sync status
and the scheduler.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from src.core.config.constants import (
    POS_DEFAULT_BATCH_SIZE,
    POS_MAX_BATCH_SIZE,
    SyncJobType,
    SyncStatusState,
    TriggerPriority,
)
from src.core.exceptions import UnknownTimerError
from src.core.models.sync import SyncJobOptions

from .deps import get_runtime

router = APIRouter(prefix="/admin", tags=["Admin"])


class JobSubmissionOptions(BaseModel):
    batch_size: int = Field(default=POS_DEFAULT_BATCH_SIZE, gt=0, le=POS_MAX_BATCH_SIZE)
    force: bool = False
    priority: TriggerPriority = TriggerPriority.MEDIUM


class JobSubmission(BaseModel):
    type: SyncJobType
    resource_id: str = Field(..., min_length=1)
    options: JobSubmissionOptions = Field(default_factory=JobSubmissionOptions)


@router.post("/jobs", status_code=202)
async def submit_job(submission: JobSubmission, runtime=Depends(get_runtime)):
    """
    Queue a resource sync.

    Without ``force`` a resource that is already syncing is rejected with 409.
    """
    if not submission.options.force:
        status = await runtime.status_cache.get(submission.resource_id)
        if status is not None and status.status == SyncStatusState.SYNCING:
            raise HTTPException(
                status_code=409,
                detail="Sync already in progress. Use force=true to queue another sync.",
            )

    job = await runtime.trigger.trigger_manual_sync(
        submission.type,
        submission.options.priority,
        store_id=submission.resource_id,
        options=SyncJobOptions(batch_size=submission.options.batch_size, force=submission.options.force),
    )
    return {
        "status": "queued",
        "job_id": job.id,
        "queue": job.queue,
        "priority": job.priority,
    }


@router.get("/queues")
async def get_queue_statistics(runtime=Depends(get_runtime)):
    """Job counts per queue and state."""
    return await runtime.queues.get_queue_stats()


@router.get("/circuit-breakers")
async def get_circuit_breaker_statistics(runtime=Depends(get_runtime)):
    """
    Get circuit breaker statistics.

    Returns state and statistics for all circuit breakers.
    """
    return runtime.breakers.get_all_stats()


@router.post("/circuit-breakers/{name}/reset")
async def reset_circuit_breaker(name: str, runtime=Depends(get_runtime)):
    if not runtime.breakers.reset(name):
        raise HTTPException(status_code=404, detail=f"Unknown circuit breaker: {name}")
    return {"status": "reset", "name": name}


@router.get("/sync-status/{resource_id}")
async def get_sync_status(resource_id: str, runtime=Depends(get_runtime)):
    status = await runtime.status_cache.get_or_create(resource_id)
    return status.model_dump(mode="json")


@router.get("/scheduler")
async def get_scheduler_status(runtime=Depends(get_runtime)):
    return runtime.scheduler.get_status()


@router.post("/scheduler/{name}/trigger", status_code=202)
async def trigger_timer(name: str, runtime=Depends(get_runtime)):
    """Run a timer's task now, outside its schedule."""
    try:
        await runtime.scheduler.trigger_now(name)
    except UnknownTimerError as e:
        raise HTTPException(status_code=404, detail=e.message) from None
    return {"status": "triggered", "timer": name}


@router.get("/metrics")
async def get_prometheus_metrics(runtime=Depends(get_runtime)):
    """
    Get Prometheus metrics.

    Returns metrics in Prometheus text format for scraping.
    """
    return Response(
        content=runtime.metrics.get_prometheus_metrics(),
        media_type=runtime.metrics.get_content_type()
    )
