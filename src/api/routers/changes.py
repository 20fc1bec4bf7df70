"""Change notification and state cache endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from src.api.middleware.rate_limit import limiter
from src.api.routers.auth import get_current_user

router = APIRouter(prefix="/api", tags=["changes"])

KNOWN_TABLES = {
    "work_orders",
    "operation_routes",
    "production_batches",
    "wo_external_moves",
    "qc_records",
    "daily_production_logs",
    "execution_records",
    "wo_stage_history",
}


class ChangeNotification(BaseModel):
    table: str = Field(..., min_length=1, max_length=64)
    wo_ids: Optional[list[str]] = Field(None, description="Changed work orders; omit for 'all'")


@router.post("/changes", status_code=202)
@limiter.limit("120/minute")
async def notify_change(
    request: Request,
    body: ChangeNotification,
    current_user: str = Depends(get_current_user),
):
    """External writers report a changed table. Delivery is debounced."""
    feed = request.app.state.change_feed
    for wo_id in body.wo_ids or [None]:
        feed.publish(body.table, wo_id)
    return {
        "status": "accepted",
        "table": body.table,
        "known_table": body.table in KNOWN_TABLES,
        "debounce_seconds": feed.debounce_seconds,
    }


@router.get("/cache/stats")
async def get_cache_stats(
    api_request: Request,
    current_user: str = Depends(get_current_user),
):
    """State cache statistics plus pending change-feed tables."""
    stats = api_request.app.state.state_handler.get_cache_stats()
    stats["pending_changes"] = api_request.app.state.change_feed.pending_tables()
    return stats


@router.post("/cache/clear")
@limiter.limit("10/minute")
async def clear_memory_cache(
    request: Request,
    current_user: str = Depends(get_current_user),
):
    """Drop every cached work order state."""
    cleared = request.app.state.state_handler.clear_memory_cache()
    return {"status": "cleared", "entries_cleared": cleared}
