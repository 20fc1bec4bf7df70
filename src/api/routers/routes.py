"""Operation route endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response

from src.api.middleware.rate_limit import limiter
from src.api.routers.auth import Actor, get_current_actor, get_current_user
from src.api.routers.work_orders import WO_ID, invalidate_state
from src.exceptions import RecordNotFoundError, RouteSequenceError
from src.models.route import (
    MoveRequest,
    RouteStatusReport,
    RouteStep,
    RouteStepCreate,
    RouteStepUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["routes"])

STEP_ID = Path(..., ge=1)


@router.get("/work-orders/{wo_id}/routes", response_model=list[RouteStep])
async def list_route_steps(
    request: Request,
    wo_id: str = WO_ID,
    current_user: str = Depends(get_current_user),
):
    return await request.app.state.route_definition.list_steps(wo_id)


@router.get("/work-orders/{wo_id}/routes/status", response_model=RouteStatusReport)
async def get_route_status(
    request: Request,
    wo_id: str = WO_ID,
    current_user: str = Depends(get_current_user),
):
    """Planned steps against observed executions, with out-of-sequence flags."""
    return await request.app.state.route_definition.status_report(wo_id)


@router.post("/work-orders/{wo_id}/routes", response_model=RouteStep, status_code=201)
@limiter.limit("30/minute")
async def add_route_step(
    request: Request,
    body: RouteStepCreate,
    wo_id: str = WO_ID,
    actor: Actor = Depends(get_current_actor),
):
    routes = request.app.state.route_definition
    try:
        step = await routes.add_step(wo_id, body)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RouteSequenceError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info("User %s added route step %s on WO %s", actor.username, step.id, wo_id)
    invalidate_state(request, wo_id)
    return step


@router.patch("/routes/{step_id}", response_model=RouteStep)
@limiter.limit("30/minute")
async def update_route_step(
    request: Request,
    body: RouteStepUpdate,
    step_id: int = STEP_ID,
    actor: Actor = Depends(get_current_actor),
):
    routes = request.app.state.route_definition
    try:
        step = await routes.update_step(step_id, body)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    invalidate_state(request, step.work_order_id)
    return step


@router.delete("/routes/{step_id}", status_code=204)
@limiter.limit("30/minute")
async def delete_route_step(
    request: Request,
    step_id: int = STEP_ID,
    actor: Actor = Depends(get_current_actor),
):
    routes = request.app.state.route_definition
    step = await routes.reader.get_route_step(step_id)
    if step is None:
        raise HTTPException(status_code=404, detail=f"Route step {step_id} not found")
    try:
        await routes.delete_step(step_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    invalidate_state(request, step.work_order_id)
    logger.info("User %s deleted route step %s", actor.username, step_id)
    return Response(status_code=204)


@router.post("/routes/{step_id}/move", response_model=list[RouteStep])
@limiter.limit("60/minute")
async def move_route_step(
    request: Request,
    body: MoveRequest,
    step_id: int = STEP_ID,
    actor: Actor = Depends(get_current_actor),
):
    """Swap a step with its neighbour. Returns the reordered route."""
    routes = request.app.state.route_definition
    try:
        steps = await routes.move_step(step_id, body.direction)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RouteSequenceError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    invalidate_state(request, steps[0].work_order_id)
    return steps
