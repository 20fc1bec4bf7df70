"""Pydantic models for operation routes."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class OperationType(str, Enum):
    RAW_MATERIAL = "RAW_MATERIAL"
    CNC = "CNC"
    QC = "QC"
    EXTERNAL_PROCESS = "EXTERNAL_PROCESS"
    PACKING = "PACKING"
    DISPATCH = "DISPATCH"


class RouteStepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MoveDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class RouteStep(BaseModel):
    """One expected operation in a work order's route."""

    id: int
    work_order_id: str
    sequence_number: int
    operation_type: OperationType
    process_name: Optional[str] = None
    is_external: bool = False
    is_mandatory: bool = True
    target_quantity: Optional[int] = None
    status: RouteStepStatus = RouteStepStatus.PENDING


class RouteStepCreate(BaseModel):
    operation_type: OperationType
    process_name: Optional[str] = Field(None, max_length=200)
    is_external: bool = False
    is_mandatory: bool = True
    target_quantity: Optional[int] = Field(None, ge=0)


class RouteStepUpdate(BaseModel):
    """Partial update; the sequence number is never changed here."""

    operation_type: Optional[OperationType] = None
    process_name: Optional[str] = Field(None, max_length=200)
    is_external: Optional[bool] = None
    is_mandatory: Optional[bool] = None
    target_quantity: Optional[int] = Field(None, ge=0)
    status: Optional[RouteStepStatus] = None

    @field_validator("operation_type", "is_external", "is_mandatory", "status", mode="before")
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to leave it unchanged; only process_name and
        # target_quantity can be cleared.
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class MoveRequest(BaseModel):
    direction: MoveDirection


class SequenceCheck(BaseModel):
    is_valid: bool
    duplicates: list[int] = Field(default_factory=list)
    gaps: list[int] = Field(default_factory=list)


class ExecutionRecord(BaseModel):
    """Observed execution of an operation (material issue, machining, etc.)."""

    id: Optional[int] = None
    work_order_id: str
    operation_type: OperationType
    process_name: Optional[str] = None
    quantity: int = 0
    created_at: Optional[datetime] = None


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    ACTIVITY_DETECTED = "activity_detected"
    OUT_OF_SEQUENCE = "out_of_sequence"


class RouteStepExecution(BaseModel):
    step: RouteStep
    status: ExecutionStatus
    execution_count: int = 0
    total_quantity: int = 0


class RouteStatusReport(BaseModel):
    work_order_id: str
    steps: list[RouteStepExecution] = Field(default_factory=list)
    has_out_of_sequence: bool = False
    sequence: SequenceCheck
