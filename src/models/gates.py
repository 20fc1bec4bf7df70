"""Pydantic models for gate decisions and the combined work order state."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.models.batch import QuantitySummary, StageBreakdown
from src.models.progress import RouteProgressReport
from src.models.qc import QCGateSummary
from src.models.work_order import CompletionReason, CompletionState, WorkOrder


class ReleaseDecision(BaseModel):
    can_release: bool = False
    is_released: bool = False
    material_complete: bool = False
    first_piece_complete: bool = False
    reasons: list[str] = Field(default_factory=list)


class CompletionDecision(BaseModel):
    state: CompletionState = CompletionState.IN_PROGRESS
    qty_reached: bool = False
    can_complete: bool = False
    suggested_reason: Optional[CompletionReason] = None
    available_reasons: list[CompletionReason] = Field(default_factory=list)
    produced_qty: int = 0
    planned_qty: int = 0


class LoggingPermission(BaseModel):
    allowed: bool = False
    reason: str = ""


class WorkOrderState(BaseModel):
    """Everything the dashboard needs for one work order, from one refresh.

    ``errors`` maps a component name to the message of the read that failed;
    that component's value is the last good one (or empty) and any gate that
    depends on it fails closed.
    """

    work_order: WorkOrder
    qc_gates: Optional[QCGateSummary] = None
    release: ReleaseDecision = Field(default_factory=ReleaseDecision)
    completion: CompletionDecision = Field(default_factory=CompletionDecision)
    logging: LoggingPermission = Field(default_factory=LoggingPermission)
    stages: StageBreakdown = Field(default_factory=StageBreakdown)
    quantities: QuantitySummary = Field(default_factory=QuantitySummary)
    route_progress: Optional[RouteProgressReport] = None
    errors: dict[str, str] = Field(default_factory=dict)
    computed_at: datetime
    data_source: str = Field(
        default="live",
        description="'cache' when served from the in-memory cache, 'live' otherwise",
    )


class GateOverview(BaseModel):
    """QC gates and the three production decisions, without the ledger."""

    work_order_id: str
    qc_gates: Optional[QCGateSummary] = None
    release: ReleaseDecision
    completion: CompletionDecision
    logging: LoggingPermission
    errors: dict[str, str] = Field(default_factory=dict)
