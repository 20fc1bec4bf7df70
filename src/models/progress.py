"""Pydantic models for route progress and bottleneck flags."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.models.route import OperationType, RouteStepStatus


class BottleneckType(str, Enum):
    QUALITY_ISSUE = "quality_issue"
    DOWNTIME_ISSUE = "downtime_issue"
    SLOW_PROGRESS = "slow_progress"


class ProductionLog(BaseModel):
    id: Optional[int] = None
    wo_id: str
    route_step_id: Optional[int] = None
    log_date: date
    ok_quantity: int = 0
    total_rejection_quantity: int = 0
    total_downtime_minutes: float = 0
    actual_runtime_minutes: float = 0
    created_by: Optional[str] = None


class StepActuals(BaseModel):
    """Planned vs. actual totals for one route step."""

    planned_quantity: int = 0
    actual_ok_qty: int = 0
    total_rejections: int = 0
    total_downtime_mins: float = 0
    total_runtime_mins: float = 0
    log_count: int = 0
    status: RouteStepStatus = RouteStepStatus.PENDING
    last_activity_date: Optional[date] = None


class RouteStepProgress(StepActuals):
    route_id: int
    sequence_number: int
    operation_type: OperationType
    process_name: Optional[str] = None
    is_external: bool = False
    is_mandatory: bool = True
    bottleneck_type: Optional[BottleneckType] = None
    progress_pct: float = 0.0


class RouteProgressReport(BaseModel):
    work_order_id: str
    steps: list[RouteStepProgress] = Field(default_factory=list)
    has_bottleneck: bool = False
