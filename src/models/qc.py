"""Pydantic models for QC records and resolved gate state."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class QCType(str, Enum):
    INCOMING = "incoming"
    FIRST_PIECE = "first_piece"
    IN_PROCESS = "in_process"
    FINAL = "final"


class GateStatus(str, Enum):
    """Canonical gate status. Every source spelling maps onto one of these."""

    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    HOLD = "hold"
    WAIVED = "waived"
    BLOCKED = "blocked"
    NOT_STARTED = "not_started"


class OverallGateStatus(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    BLOCKED = "blocked"
    PENDING = "pending"


class QCRecord(BaseModel):
    id: Optional[int] = None
    wo_id: str
    qc_type: str
    result: Optional[str] = None
    qc_date_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    measurements: dict = Field(default_factory=dict)

    @property
    def recorded_at(self) -> Optional[datetime]:
        return self.qc_date_time or self.created_at


class StoredGate(BaseModel):
    """Gate backed by a single status field on the work order."""

    status: GateStatus
    stored_status: Optional[str] = None
    is_complete: bool = False
    blocked_by: Optional[QCType] = None
    tone: str = "muted"


class CountGate(BaseModel):
    """Gate derived from how many checks happened and the latest result.

    ``status`` is None when no check has been recorded yet.
    """

    count: int = 0
    status: Optional[GateStatus] = None
    latest_result: Optional[str] = None
    latest_at: Optional[datetime] = None
    tone: Optional[str] = None


class QCGateSummary(BaseModel):
    material: StoredGate
    first_piece: StoredGate
    in_process: CountGate
    final: CountGate
    overall: OverallGateStatus
