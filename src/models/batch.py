"""Pydantic models for production batches, external moves and stage totals."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field

# External moves in these statuses are closed and hold no material.
CLOSED_MOVE_STATUSES = frozenset({"received_full", "cancelled"})


class ProductionBatch(BaseModel):
    """A sub-quantity of a work order tracked through stages."""

    id: Optional[int] = None
    wo_id: str
    batch_number: int = 1
    stage_type: str = "production"
    external_process_type: Optional[str] = None
    batch_quantity: int = 0
    qc_approved_qty: int = 0
    dispatched_qty: int = 0
    qc_final_status: Optional[str] = None
    ended_at: Optional[datetime] = None

    @computed_field
    @property
    def dispatchable_qty(self) -> int:
        return max(0, self.qc_approved_qty - self.dispatched_qty)

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class ExternalMove(BaseModel):
    """Material sent to an external processor (plating, heat treatment...)."""

    id: Optional[int] = None
    work_order_id: str
    process: str = ""
    quantity_sent: int = 0
    quantity_returned: int = 0
    status: str = "sent"
    expected_return_date: Optional[date] = None

    @property
    def is_open(self) -> bool:
        return (self.status or "").lower() not in CLOSED_MOVE_STATUSES

    @property
    def in_flight_qty(self) -> int:
        if not self.is_open:
            return 0
        return max(0, self.quantity_sent - self.quantity_returned)


class StageBreakdown(BaseModel):
    """Quantities of one work order per pipeline stage."""

    production: int = 0
    external: int = 0
    external_breakdown: dict[str, int] = Field(default_factory=dict)
    qc: int = 0
    packing: int = 0
    dispatched: int = 0
    total_active: int = 0
    stage_count: int = 0
    is_split_flow: bool = False
    external_source: str = Field(
        default="none", description="'moves', 'batches' or 'none'"
    )


class QuantitySummary(BaseModel):
    """Ordered vs. produced vs. approved vs. dispatched totals for one WO."""

    ordered_qty: int = 0
    produced_qty: int = 0
    qc_approved_qty: int = 0
    dispatched_qty: int = 0
    dispatchable_qty: int = 0
    remaining_to_produce_qty: int = 0
    remaining_to_dispatch_qty: int = 0
    production_pct: float = 0.0
    qc_pct: float = 0.0
    dispatch_pct: float = 0.0
    is_complete: bool = False


class ExternalReturnAlert(BaseModel):
    move: ExternalMove
    in_flight_qty: int
    days_until_due: int
    is_overdue: bool


class ExternalReturnReport(BaseModel):
    checked_on: date
    overdue: list[ExternalReturnAlert] = Field(default_factory=list)
    due_soon: list[ExternalReturnAlert] = Field(default_factory=list)


class WorkOrderLedger(BaseModel):
    """Raw ledger rows for one work order plus their aggregation."""

    work_order_id: str
    stages: StageBreakdown
    quantities: QuantitySummary
    batches: list[ProductionBatch] = Field(default_factory=list)
    external_moves: list[ExternalMove] = Field(default_factory=list)


class StageDashboardRow(BaseModel):
    work_order_id: str
    display_id: str = ""
    customer: str = ""
    ordered_qty: int = 0
    stages: StageBreakdown
