"""Pydantic models for work orders and their audit trail."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ReleaseStatus(str, Enum):
    NOT_RELEASED = "NOT_RELEASED"
    RELEASED = "RELEASED"


class CompletionReason(str, Enum):
    MANUAL = "manual"
    QTY_REACHED = "qty_reached"
    QC_GATED = "qc_gated"


class CompletionState(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"


class WorkOrder(BaseModel):
    """Work order fields consumed and governed by the gates.

    The material QC status has two historical columns; ``material_status``
    picks whichever one is populated.
    """

    id: str
    display_id: str = ""
    customer: str = ""
    item_code: str = ""
    quantity: int = 0
    qty_completed: int = 0
    current_stage: Optional[str] = None

    qc_material_status: Optional[str] = None
    qc_raw_material_status: Optional[str] = None
    qc_first_piece_status: Optional[str] = None

    production_release_status: ReleaseStatus = ReleaseStatus.NOT_RELEASED
    production_release_date: Optional[datetime] = None
    production_released_by: Optional[str] = None
    production_release_notes: Optional[str] = None
    production_allowed: bool = False

    production_complete: bool = False
    production_complete_qty: Optional[int] = None
    production_completed_at: Optional[datetime] = None
    production_completed_by: Optional[str] = None
    production_complete_reason: Optional[CompletionReason] = None

    @field_validator("quantity", "qty_completed", mode="before")
    @classmethod
    def _none_to_zero(cls, value):
        return 0 if value is None else value

    @field_validator("production_release_status", mode="before")
    @classmethod
    def _default_release_status(cls, value):
        if not value:
            return ReleaseStatus.NOT_RELEASED
        return str(value).upper()

    @property
    def material_status(self) -> Optional[str]:
        return self.qc_material_status or self.qc_raw_material_status

    @property
    def is_released(self) -> bool:
        return self.production_release_status == ReleaseStatus.RELEASED


class StageHistoryEntry(BaseModel):
    """Append-only record of a macro-stage transition."""

    id: Optional[int] = None
    wo_id: str
    from_stage: Optional[str] = None
    to_stage: str
    changed_at: Optional[datetime] = None
    changed_by: Optional[str] = None
    is_override: bool = False
    reason: Optional[str] = None


class GateEventType(str, Enum):
    RELEASED = "released"
    RELEASE_REOPENED = "release_reopened"
    COMPLETED = "completed"
    COMPLETION_REOPENED = "completion_reopened"


class GateEvent(BaseModel):
    """Append-only record of a release/completion action."""

    id: Optional[int] = None
    wo_id: str
    event: GateEventType
    actor: Optional[str] = None
    reason: Optional[str] = None
    quantity: Optional[int] = None
    created_at: Optional[datetime] = None


class ReleaseRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class ReopenRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class CompleteRequest(BaseModel):
    reason: CompletionReason
    notes: Optional[str] = Field(None, max_length=1000, description="Required for manual and qc_gated")


class ProductionLogRequest(BaseModel):
    route_step_id: Optional[int] = None
    log_date: Optional[date] = None
    ok_quantity: int = Field(..., ge=0)
    rejection_quantity: int = Field(0, ge=0)
    downtime_minutes: float = Field(0, ge=0)
    runtime_minutes: float = Field(0, ge=0)
