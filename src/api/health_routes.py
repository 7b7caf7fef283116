"""
Health Check Routes

This module contains all health check endpoints.
"""


from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .deps import get_runtime

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: str
    version: str | None = None
    components: dict | None = None


@router.get("", response_model=HealthResponse)
async def health_check(runtime=Depends(get_runtime)):
    """
    Quick health check endpoint.

    Returns the key-value store status for load balancer checks.
    """
    return await runtime.health.check_health()


@router.get("/detailed")
async def detailed_health(runtime=Depends(get_runtime)):
    """
    Detailed health check endpoint.

    Store, datastore, every upstream, circuit breakers and queue depths.
    """
    return await runtime.health.detailed_health_report()


@router.get("/live")
async def liveness_probe(runtime=Depends(get_runtime)):
    """Kubernetes liveness probe."""
    return await runtime.health.liveness_check()


@router.get("/ready")
async def readiness_probe(runtime=Depends(get_runtime)):
    """
    Kubernetes readiness probe.

    Not ready while the key-value store is unreachable: no job can be claimed.
    """
    result = await runtime.health.readiness_check()

    if result["status"] != "ready":
        raise HTTPException(status_code=503, detail=result)

    return result
