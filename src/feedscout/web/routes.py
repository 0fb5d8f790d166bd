"""API routes for the search queue.

These endpoints expose the queue statistics and item listing to the
dashboard and let the scheduler trigger the daily search and queue
drains. Scheduler endpoints require the configured bearer secret.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from ..async_queue.job_models import JobStatus
from ..config.settings import settings
from ..services import ServiceContainer
from ..utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Reject requests that do not carry ``Bearer <cron_secret>``."""
    secret = settings.cron_secret
    if not secret or authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/queue/stats")
async def queue_stats(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Counts by status for the durable queue plus the LLM queue snapshot."""
    stats = await container.search_queue.get_queue_stats()
    return {
        "stats": stats.to_dict(),
        "llm_queue": container.llm_queue.get_queue_status().to_dict(),
    }


@router.get("/queue/items")
async def queue_items(
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """List queue records, newest first. Unknown status values are ignored."""
    status_filter = None
    if status in {s.value for s in JobStatus}:
        status_filter = JobStatus(status)
    items = await container.search_queue.list_items(
        status=status_filter, user_id=user_id, limit=limit
    )
    return {"items": [item.to_dict() for item in items]}


@router.post("/jobs/process", dependencies=[Depends(require_cron_secret)])
async def process_jobs(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Drain every pending record."""
    summary = await container.search_queue.process_queue()
    return {"message": "Queue processed", **summary.to_dict()}


@router.get("/cron/daily-search", dependencies=[Depends(require_cron_secret)])
async def daily_search(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Enqueue all active agents and drain the queue."""
    result = await container.run_daily_search()
    message = "Daily search completed" if result["enqueued"] else "No active agents to process"
    return {"success": True, "message": message, **result}


@router.post("/queue/cleanup", dependencies=[Depends(require_cron_secret)])
async def cleanup_queue(
    days: int = Query(settings.cleanup_days, ge=1),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, int]:
    """Delete completed records older than ``days`` days."""
    deleted = await container.search_queue.clear_old_items(days)
    return {"deleted": deleted}
