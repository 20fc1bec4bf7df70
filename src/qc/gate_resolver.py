"""Resolve QC gate state for a work order.

Material and first-piece gates are single status fields on the work order.
First-piece is resolved against material: while material QC is not complete
an unacted first-piece gate shows as ``blocked`` rather than ``pending``.
In-process and final gates are count based: how many checks happened and
what the most recent one said.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional

from src.models.qc import (
    CountGate,
    GateStatus,
    OverallGateStatus,
    QCGateSummary,
    QCRecord,
    QCType,
    StoredGate,
)
from src.models.work_order import WorkOrder
from src.qc.status import (
    gate_tone,
    is_gate_actionable,
    is_gate_complete,
    is_gate_failed,
    normalize_qc_status,
    normalize_qc_type,
)

logger = logging.getLogger(__name__)


def resolve_first_piece(
    first_piece_status: Optional[str], material_status: Optional[str]
) -> GateStatus:
    """Display status of the first-piece gate given the material gate."""
    normalized = normalize_qc_status(first_piece_status)
    if not is_gate_complete(material_status) and is_gate_actionable(normalized):
        return GateStatus.BLOCKED
    return normalized


def resolve_material_gate(work_order: WorkOrder) -> StoredGate:
    stored = work_order.material_status
    status = normalize_qc_status(stored)
    return StoredGate(
        status=status,
        stored_status=stored,
        is_complete=is_gate_complete(status),
        tone=gate_tone(status),
    )


def resolve_first_piece_gate(work_order: WorkOrder) -> StoredGate:
    stored = work_order.qc_first_piece_status
    status = resolve_first_piece(stored, work_order.material_status)
    return StoredGate(
        status=status,
        stored_status=stored,
        # Completeness is judged on the stored value, never on the display value.
        is_complete=is_gate_complete(stored),
        blocked_by=QCType.INCOMING if status == GateStatus.BLOCKED else None,
        tone=gate_tone(status),
    )


def _record_sort_key(record: QCRecord) -> tuple[float, int]:
    recorded_at = record.recorded_at
    timestamp = recorded_at.timestamp() if recorded_at else float("-inf")
    return timestamp, record.id or 0


def resolve_count_gate(records: Iterable[QCRecord], qc_type: QCType) -> CountGate:
    """Count checks of one type and report the latest result.

    With no records the gate has no status at all, which is different from
    ``not_started``.
    """
    matching = [r for r in records if normalize_qc_type(r.qc_type) == qc_type]
    if not matching:
        return CountGate()

    latest = max(matching, key=_record_sort_key)
    status = normalize_qc_status(latest.result, default=GateStatus.NOT_STARTED)
    return CountGate(
        count=len(matching),
        status=status,
        latest_result=latest.result,
        latest_at=latest.recorded_at,
        tone=gate_tone(status),
    )


def overall_gate_status(
    material_status: Optional[str], first_piece_status: Optional[str]
) -> OverallGateStatus:
    """Roll the two release gates up into one badge."""
    if is_gate_failed(material_status) or is_gate_failed(first_piece_status):
        return OverallGateStatus.FAILED
    if is_gate_complete(material_status) and is_gate_complete(first_piece_status):
        return OverallGateStatus.COMPLETE
    if is_gate_actionable(material_status):
        return OverallGateStatus.BLOCKED
    return OverallGateStatus.PENDING


class QCGateResolver:
    """Resolves all four QC gates for a work order.

    Usage:
        summary = QCGateResolver().resolve(work_order, qc_records)
        summary.first_piece.status  # GateStatus.BLOCKED while material pending
    """

    def resolve(
        self, work_order: WorkOrder, qc_records: Iterable[QCRecord] = ()
    ) -> QCGateSummary:
        records = [r for r in qc_records if r.wo_id == work_order.id]
        skipped = [r for r in records if normalize_qc_type(r.qc_type) is None]
        if skipped:
            logger.warning(
                "Ignoring %d QC records with unknown type for WO %s",
                len(skipped), work_order.id,
            )

        return QCGateSummary(
            material=resolve_material_gate(work_order),
            first_piece=resolve_first_piece_gate(work_order),
            in_process=resolve_count_gate(records, QCType.IN_PROCESS),
            final=resolve_count_gate(records, QCType.FINAL),
            overall=overall_gate_status(
                work_order.material_status, work_order.qc_first_piece_status
            ),
        )
