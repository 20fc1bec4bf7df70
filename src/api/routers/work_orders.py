"""Work order state, gate action and production logging endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from src.api.middleware.rate_limit import GATE_ACTION_LIMIT, actor_or_address, limiter
from src.api.routers.auth import (
    Actor,
    completion_roles,
    get_current_actor,
    get_current_user,
    release_roles,
    require_roles,
)
from src.exceptions import (
    DatabaseError,
    GateValidationError,
    ProductionLockedError,
    RecordNotFoundError,
)
from src.ledger.batch_ledger import aggregate_stages, summarize_quantities
from src.models.batch import WorkOrderLedger
from src.models.gates import GateOverview, WorkOrderState
from src.models.progress import ProductionLog, RouteProgressReport
from src.models.work_order import (
    CompleteRequest,
    GateEvent,
    ProductionLogRequest,
    ReleaseRequest,
    ReopenRequest,
    StageHistoryEntry,
    WorkOrder,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/work-orders", tags=["work-orders"])

WO_ID = Path(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_\-]+$")


async def _get_state(request: Request, wo_id: str, use_cache: bool = True) -> WorkOrderState:
    handler = request.app.state.state_handler
    try:
        return await handler.get_state(wo_id, use_cache=use_cache)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DatabaseError as exc:
        logger.exception("Store unavailable for WO %s", wo_id)
        raise HTTPException(status_code=503, detail="Record store unavailable") from exc


def invalidate_state(request: Request, wo_id: str) -> None:
    request.app.state.state_handler.invalidate({wo_id})


@router.get("/{wo_id}/state", response_model=WorkOrderState)
@limiter.limit("60/minute")
async def get_work_order_state(
    request: Request,
    wo_id: str = WO_ID,
    use_cache: bool = Query(True, description="Serve the in-memory state if present"),
    current_user: str = Depends(get_current_user),
):
    """Full derived state: gates, decisions, stage breakdown and route progress."""
    return await _get_state(request, wo_id, use_cache=use_cache)


@router.get("/{wo_id}/gates", response_model=GateOverview)
@limiter.limit("60/minute")
async def get_gates(
    request: Request,
    wo_id: str = WO_ID,
    current_user: str = Depends(get_current_user),
):
    state = await _get_state(request, wo_id)
    return GateOverview(
        work_order_id=wo_id,
        qc_gates=state.qc_gates,
        release=state.release,
        completion=state.completion,
        logging=state.logging,
        errors=state.errors,
    )


@router.get("/{wo_id}/ledger", response_model=WorkOrderLedger)
@limiter.limit("60/minute")
async def get_ledger(
    request: Request,
    wo_id: str = WO_ID,
    current_user: str = Depends(get_current_user),
):
    reader = request.app.state.reader
    work_order = await reader.get_work_order(wo_id)
    if work_order is None:
        raise HTTPException(status_code=404, detail=f"Work order {wo_id} not found")
    batches = await reader.get_batches([wo_id])
    moves = await reader.get_external_moves([wo_id])
    return WorkOrderLedger(
        work_order_id=wo_id,
        stages=aggregate_stages(batches, moves, work_order.quantity),
        quantities=summarize_quantities(work_order, batches),
        batches=batches,
        external_moves=moves,
    )


@router.get("/{wo_id}/progress", response_model=RouteProgressReport)
@limiter.limit("60/minute")
async def get_progress(
    request: Request,
    wo_id: str = WO_ID,
    current_user: str = Depends(get_current_user),
):
    state = await _get_state(request, wo_id)
    if state.route_progress is None:
        raise HTTPException(
            status_code=503, detail=state.errors.get("route_progress", "Progress unavailable")
        )
    return state.route_progress


@router.get("/{wo_id}/history", response_model=list[StageHistoryEntry])
async def get_stage_history(
    request: Request,
    wo_id: str = WO_ID,
    current_user: str = Depends(get_current_user),
):
    return await request.app.state.reader.get_stage_history(wo_id)


@router.get("/{wo_id}/events", response_model=list[GateEvent])
async def get_gate_events(
    request: Request,
    wo_id: str = WO_ID,
    current_user: str = Depends(get_current_user),
):
    return await request.app.state.reader.get_gate_events(wo_id)


@router.post("/{wo_id}/release", response_model=WorkOrder)
@limiter.limit(GATE_ACTION_LIMIT, key_func=actor_or_address)
async def release_work_order(
    request: Request,
    body: ReleaseRequest,
    wo_id: str = WO_ID,
    actor: Actor = Depends(require_roles(release_roles)),
):
    """Release to production. Needs material and first-piece QC passed or waived."""
    gate = request.app.state.release_gate
    try:
        work_order = await gate.release(wo_id, actor.username, body.notes)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except GateValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    invalidate_state(request, wo_id)
    return work_order


@router.post("/{wo_id}/release/reopen", response_model=WorkOrder)
@limiter.limit(GATE_ACTION_LIMIT, key_func=actor_or_address)
async def reopen_release(
    request: Request,
    body: ReopenRequest,
    wo_id: str = WO_ID,
    actor: Actor = Depends(require_roles(release_roles)),
):
    gate = request.app.state.release_gate
    try:
        work_order = await gate.reopen(wo_id, actor.username, body.reason)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except GateValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    invalidate_state(request, wo_id)
    return work_order


@router.post("/{wo_id}/complete", response_model=WorkOrder)
@limiter.limit(GATE_ACTION_LIMIT, key_func=actor_or_address)
async def complete_work_order(
    request: Request,
    body: CompleteRequest,
    wo_id: str = WO_ID,
    actor: Actor = Depends(require_roles(completion_roles)),
):
    """Mark production complete; locks further production logging."""
    gate = request.app.state.completion_gate
    try:
        work_order = await gate.complete(wo_id, actor.username, body.reason, body.notes)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except GateValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    invalidate_state(request, wo_id)
    return work_order


@router.post("/{wo_id}/complete/reopen", response_model=WorkOrder)
@limiter.limit(GATE_ACTION_LIMIT, key_func=actor_or_address)
async def reopen_completion(
    request: Request,
    body: ReopenRequest,
    wo_id: str = WO_ID,
    actor: Actor = Depends(require_roles(completion_roles)),
):
    gate = request.app.state.completion_gate
    try:
        work_order = await gate.reopen(wo_id, actor.username, body.reason)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except GateValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    invalidate_state(request, wo_id)
    return work_order


@router.post("/{wo_id}/production-logs", response_model=ProductionLog, status_code=201)
@limiter.limit("60/minute")
async def log_production(
    request: Request,
    body: ProductionLogRequest,
    wo_id: str = WO_ID,
    actor: Actor = Depends(get_current_actor),
):
    """Append a daily production log. Rejected while logging is locked."""
    service = request.app.state.production_logs
    try:
        log = await service.log(wo_id, body, actor.username)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ProductionLockedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    invalidate_state(request, wo_id)
    return log
