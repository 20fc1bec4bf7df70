"""Cross work order dashboard endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.middleware.rate_limit import limiter
from src.api.routers.auth import get_current_user
from src.ledger.batch_ledger import aggregate_by_work_order, dispatchable_batches
from src.models.batch import ExternalReturnReport, ProductionBatch, StageBreakdown, StageDashboardRow
from src.models.progress import RouteProgressReport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stages", response_model=List[StageDashboardRow])
@limiter.limit("30/minute")
async def get_stage_board(
    request: Request,
    wo_ids: Optional[List[str]] = Query(None, description="Limit to these work orders"),
    split_only: bool = Query(False, description="Only work orders in split flow"),
    current_user: str = Depends(get_current_user),
):
    """Stage breakdown for many work orders at once."""
    reader = request.app.state.reader
    work_orders = await reader.get_work_orders(wo_ids)
    ids = [wo.id for wo in work_orders]
    batches = await reader.get_batches(ids)
    moves = await reader.get_external_moves(ids)
    breakdowns = aggregate_by_work_order(
        batches, moves, {wo.id: wo.quantity for wo in work_orders}
    )

    rows = []
    for wo in work_orders:
        stages = breakdowns.get(wo.id, StageBreakdown())
        if split_only and not stages.is_split_flow:
            continue
        rows.append(
            StageDashboardRow(
                work_order_id=wo.id,
                display_id=wo.display_id,
                customer=wo.customer,
                ordered_qty=wo.quantity,
                stages=stages,
            )
        )
    return rows


@router.get("/dispatchable", response_model=List[ProductionBatch])
@limiter.limit("30/minute")
async def get_dispatchable(
    request: Request,
    current_user: str = Depends(get_current_user),
):
    """Batches holding QC-approved stock that has not been dispatched."""
    batches = await request.app.state.reader.get_batches()
    return dispatchable_batches(batches)


@router.get("/bottlenecks", response_model=List[RouteProgressReport])
@limiter.limit("10/minute")
async def get_bottlenecks(
    request: Request,
    include_complete: bool = Query(False, description="Include completed work orders"),
    current_user: str = Depends(get_current_user),
):
    """Route progress for every work order with at least one flagged step."""
    reader = request.app.state.reader
    detector = request.app.state.state_handler.detector

    reports = []
    for wo in await reader.get_work_orders():
        if wo.production_complete and not include_complete:
            continue
        steps = await reader.get_route_steps(wo.id)
        if not steps:
            continue
        logs = await reader.get_production_logs(wo.id)
        report = detector.detect(steps, logs, wo)
        if report.has_bottleneck:
            reports.append(report)
    logger.debug("Bottleneck scan found %d work orders", len(reports))
    return reports


@router.get("/external-returns", response_model=ExternalReturnReport)
@limiter.limit("30/minute")
async def get_external_returns(
    request: Request,
    current_user: str = Depends(get_current_user),
):
    """Open external moves that are overdue or due soon."""
    return await request.app.state.return_monitor.check()
