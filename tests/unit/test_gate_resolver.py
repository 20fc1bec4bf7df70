"""Tests for src/qc/gate_resolver.py"""

from datetime import datetime, timezone

import pytest

from src.models.qc import GateStatus, OverallGateStatus, QCType
from src.qc.gate_resolver import (
    QCGateResolver,
    overall_gate_status,
    resolve_count_gate,
    resolve_first_piece,
)
from tests.fixtures.sample_data import make_qc_record, make_work_order


class TestResolveFirstPiece:
    """First-piece display status against the material gate."""

    def test_material_pending_first_piece_not_started_is_blocked(self):
        """Material pending and first piece not started shows blocked."""
        assert resolve_first_piece("not_started", "pending") == GateStatus.BLOCKED

    def test_absent_first_piece_is_blocked_while_material_open(self):
        assert resolve_first_piece(None, None) == GateStatus.BLOCKED
        assert resolve_first_piece("pending", "hold") == GateStatus.BLOCKED

    @pytest.mark.parametrize("material", ["waived", "passed", "PASS"])
    def test_never_blocked_once_material_complete(self, material):
        """Once material is complete an unacted first piece is pending, not blocked."""
        assert resolve_first_piece("pending", material) == GateStatus.PENDING
        assert resolve_first_piece("not started", material) == GateStatus.NOT_STARTED
        assert resolve_first_piece(None, material) == GateStatus.PENDING

    def test_acted_first_piece_keeps_its_status(self):
        """A first piece that already has a result is not masked by blocked."""
        assert resolve_first_piece("fail", "pending") == GateStatus.FAILED
        assert resolve_first_piece("hold", "pending") == GateStatus.HOLD


class TestResolveCountGate:
    """In-process and final gates are count based."""

    def test_no_records_has_no_status(self):
        gate = resolve_count_gate([], QCType.FINAL)
        assert gate.count == 0
        assert gate.status is None

    def test_latest_by_timestamp_wins(self):
        records = [
            make_qc_record("in_process", "fail", datetime(2025, 3, 1, 10, 0), record_id=3),
            make_qc_record("in_process", "Pass", datetime(2025, 3, 1, 12, 0), record_id=1),
            make_qc_record("final", "fail", datetime(2025, 3, 2, 9, 0), record_id=2),
        ]
        gate = resolve_count_gate(records, QCType.IN_PROCESS)
        assert gate.count == 2
        assert gate.status == GateStatus.PASSED
        assert gate.latest_result == "Pass"

    def test_falls_back_to_created_at(self):
        record = make_qc_record(
            "final", "hold", None, created_at=datetime(2025, 3, 1, tzinfo=timezone.utc)
        )
        gate = resolve_count_gate([record], QCType.FINAL)
        assert gate.status == GateStatus.HOLD
        assert gate.latest_at == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_unknown_result_is_not_started(self):
        record = make_qc_record("final", "measured", datetime(2025, 3, 1))
        assert resolve_count_gate([record], QCType.FINAL).status == GateStatus.NOT_STARTED


class TestOverallGateStatus:
    def test_failed_wins(self):
        assert overall_gate_status("passed", "fail") == OverallGateStatus.FAILED

    def test_complete(self):
        assert overall_gate_status("waived", "pass") == OverallGateStatus.COMPLETE

    def test_blocked_while_material_open(self):
        assert overall_gate_status("pending", None) == OverallGateStatus.BLOCKED

    def test_pending_otherwise(self):
        assert overall_gate_status("passed", "pending") == OverallGateStatus.PENDING


class TestQCGateResolver:
    """Tests for QCGateResolver.resolve()."""

    def test_scenario_material_pending(self):
        """Material pending makes the first-piece gate blocked by incoming QC."""
        wo = make_work_order(qc_material_status="pending", qc_first_piece_status="not_started")
        summary = QCGateResolver().resolve(wo)

        assert summary.material.status == GateStatus.PENDING
        assert summary.first_piece.status == GateStatus.BLOCKED
        assert summary.first_piece.blocked_by == QCType.INCOMING
        assert summary.first_piece.is_complete is False

    def test_raw_material_column_is_the_fallback(self):
        wo = make_work_order(qc_material_status=None, qc_raw_material_status="Pass")
        summary = QCGateResolver().resolve(wo)
        assert summary.material.is_complete
        assert summary.material.stored_status == "Pass"

    def test_ignores_other_work_orders_and_unknown_types(self):
        wo = make_work_order()
        records = [
            make_qc_record("final", "pass", datetime(2025, 3, 1), record_id=1),
            make_qc_record("final", "fail", datetime(2025, 3, 2), record_id=2, wo_id="WO-OTHER"),
            make_qc_record("visual", "fail", datetime(2025, 3, 3), record_id=3),
        ]
        summary = QCGateResolver().resolve(wo, records)
        assert summary.final.count == 1
        assert summary.final.status == GateStatus.PASSED
        assert summary.in_process.status is None
