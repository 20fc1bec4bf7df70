"""Pydantic models for WOFlow."""

from src.models.batch import (
    ExternalMove,
    ExternalReturnReport,
    ProductionBatch,
    QuantitySummary,
    StageBreakdown,
)
from src.models.gates import (
    CompletionDecision,
    LoggingPermission,
    ReleaseDecision,
    WorkOrderState,
)
from src.models.progress import BottleneckType, ProductionLog, RouteProgressReport
from src.models.qc import GateStatus, QCGateSummary, QCRecord, QCType
from src.models.route import OperationType, RouteStep
from src.models.work_order import (
    CompletionReason,
    GateEvent,
    ReleaseStatus,
    StageHistoryEntry,
    WorkOrder,
)

__all__ = [
    "ExternalMove",
    "ExternalReturnReport",
    "ProductionBatch",
    "QuantitySummary",
    "StageBreakdown",
    "CompletionDecision",
    "LoggingPermission",
    "ReleaseDecision",
    "WorkOrderState",
    "BottleneckType",
    "ProductionLog",
    "RouteProgressReport",
    "GateStatus",
    "QCGateSummary",
    "QCRecord",
    "QCType",
    "OperationType",
    "RouteStep",
    "CompletionReason",
    "GateEvent",
    "ReleaseStatus",
    "StageHistoryEntry",
    "WorkOrder",
]
