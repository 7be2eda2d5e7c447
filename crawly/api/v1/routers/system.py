"""
System Router - Health, stats and status endpoints.
"""

from fastapi import APIRouter, Depends

from ....config import settings
from ....dependencies import get_metrics, get_pool
from ....models import HealthResponse, StatsResponse
from ....services.metrics import MetricsCollector
from ....services.pool import ExecutionPool

router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse)
async def health_check(pool: ExecutionPool = Depends(get_pool)) -> HealthResponse:
    """
    Check service health.

    Returns:
        HealthResponse with execution pool occupancy
    """
    return HealthResponse(
        status="shutting_down" if pool.is_closing else "healthy",
        max_concurrency=pool.max_concurrency,
        active_jobs=pool.active_count,
        queued_jobs=pool.queued_count,
        idle_contexts=pool.idle_sessions,
        context_policy=pool.context_policy,
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(metrics: MetricsCollector = Depends(get_metrics)) -> StatsResponse:
    """Served/error counters since startup."""
    return StatsResponse(**metrics.snapshot())


@router.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }
