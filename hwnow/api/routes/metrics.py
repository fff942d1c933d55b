"""System metric routes, polled by the dashboard."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...dependencies import get_repository, get_resource_monitor
from ...persistence.repository import DashboardRepository

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/current")
async def get_current_metrics():
    """Latest metric snapshot."""
    return get_resource_monitor().get_current()


@router.get("/history")
async def get_metric_history(limit: int = Query(60, ge=1, le=3600)):
    return get_resource_monitor().get_history(limit=limit)


@router.get("/logs")
async def get_resource_logs(
    metric_type: Optional[str] = Query(None, alias="metricType"),
    limit: int = Query(500, ge=1, le=10000),
    repo: DashboardRepository = Depends(get_repository),
):
    """Persisted resource samples, newest first."""
    rows = await repo.get_resource_logs(metric_type=metric_type, limit=limit)
    return [row.to_dict() for row in rows]
