"""Production completion gate and the production-logging lock.

States are IN_PROGRESS -> COMPLETE -> IN_PROGRESS (reopen only). Reaching
the target quantity makes ``qty_reached`` available but never completes a
work order by itself; every completion is an explicit action.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from src.database.connection import Database
from src.exceptions import GateValidationError, ProductionLockedError, RecordNotFoundError
from src.gates.events import append_gate_event
from src.models.gates import CompletionDecision, LoggingPermission
from src.models.progress import ProductionLog
from src.models.qc import QCGateSummary
from src.models.route import RouteStepStatus
from src.models.work_order import (
    CompletionReason,
    CompletionState,
    GateEventType,
    ProductionLogRequest,
    WorkOrder,
)
from src.qc.gate_resolver import QCGateResolver
from src.qc.status import is_gate_failed, is_gate_on_hold
from src.query.record_reader import RecordReader

logger = logging.getLogger(__name__)


def has_qc_context(qc_summary: Optional[QCGateSummary]) -> bool:
    """True when the latest in-process or final check failed or is on hold."""
    if qc_summary is None:
        return False
    for gate in (qc_summary.in_process, qc_summary.final):
        if gate.status is not None and (is_gate_failed(gate.status) or is_gate_on_hold(gate.status)):
            return True
    return False


def evaluate_completion(
    work_order: WorkOrder, qc_summary: Optional[QCGateSummary] = None
) -> CompletionDecision:
    planned = max(0, work_order.quantity)
    produced = max(0, work_order.qty_completed)
    qty_reached = planned > 0 and produced >= planned

    if work_order.production_complete:
        return CompletionDecision(
            state=CompletionState.COMPLETE,
            qty_reached=qty_reached,
            produced_qty=produced,
            planned_qty=planned,
        )

    available = [CompletionReason.MANUAL]
    if qty_reached:
        available.insert(0, CompletionReason.QTY_REACHED)
    if has_qc_context(qc_summary):
        available.append(CompletionReason.QC_GATED)

    return CompletionDecision(
        state=CompletionState.IN_PROGRESS,
        qty_reached=qty_reached,
        can_complete=True,
        suggested_reason=CompletionReason.QTY_REACHED if qty_reached else CompletionReason.MANUAL,
        available_reasons=available,
        produced_qty=produced,
        planned_qty=planned,
    )


def evaluate_logging_permission(work_order: WorkOrder) -> LoggingPermission:
    if work_order.production_complete:
        return LoggingPermission(allowed=False, reason="Production is marked complete")
    if not work_order.is_released:
        return LoggingPermission(allowed=False, reason="Work order is not released to production")
    if not work_order.production_allowed:
        return LoggingPermission(allowed=False, reason="Production is not allowed")
    return LoggingPermission(allowed=True, reason="")


class CompletionGate:
    """Close production on a work order, or reopen it."""

    def __init__(
        self,
        db: Database,
        reader: Optional[RecordReader] = None,
        resolver: Optional[QCGateResolver] = None,
        change_feed=None,
    ):
        self.db = db
        self.reader = reader or RecordReader(db)
        self.resolver = resolver or QCGateResolver()
        self.change_feed = change_feed

    async def complete(
        self,
        wo_id: str,
        actor: str,
        reason: CompletionReason,
        notes: Optional[str] = None,
    ) -> WorkOrder:
        work_order = await _require(self.reader, wo_id)
        qc_summary = None
        if reason == CompletionReason.QC_GATED:
            records = await self.reader.get_qc_records(wo_id)
            qc_summary = self.resolver.resolve(work_order, records)

        decision = evaluate_completion(work_order, qc_summary)
        if decision.state == CompletionState.COMPLETE:
            raise GateValidationError(f"Work order {wo_id} is already complete")
        notes = (notes or "").strip() or None
        if reason == CompletionReason.QTY_REACHED and not decision.qty_reached:
            raise GateValidationError(
                f"Produced {decision.produced_qty} of {decision.planned_qty}; target not reached"
            )
        if reason in (CompletionReason.MANUAL, CompletionReason.QC_GATED) and not notes:
            raise GateValidationError(f"A reason is required to complete with '{reason.value}'")
        if reason not in decision.available_reasons:
            raise GateValidationError(
                "QC-gated completion needs a failed or held in-process/final check"
            )

        now = datetime.now()
        async with self.db.transaction():
            cursor = await self.db.execute_write_no_commit(
                """
                UPDATE work_orders SET
                    production_complete = 1,
                    production_complete_qty = qty_completed,
                    production_completed_at = ?,
                    production_completed_by = ?,
                    production_complete_reason = ?,
                    updated_at = ?
                WHERE id = ? AND production_complete = 0
                """,
                [now.isoformat(), actor, reason.value, now.isoformat(), wo_id],
            )
            if cursor.rowcount != 1:
                raise GateValidationError(f"Work order {wo_id} was completed concurrently")
            await append_gate_event(
                self.db, wo_id, GateEventType.COMPLETED, actor,
                reason=notes or reason.value, quantity=decision.produced_qty, at=now,
            )

        logger.info(
            "WO %s production complete (%s) at %d/%d by %s",
            wo_id, reason.value, decision.produced_qty, decision.planned_qty, actor,
        )
        self._notify(wo_id)
        return await self.reader.get_work_order(wo_id)

    async def reopen(self, wo_id: str, actor: str, reason: Optional[str] = None) -> WorkOrder:
        work_order = await _require(self.reader, wo_id)
        if not work_order.production_complete:
            raise GateValidationError(f"Work order {wo_id} is not complete")

        now = datetime.now()
        async with self.db.transaction():
            await self.db.execute_write_no_commit(
                """
                UPDATE work_orders SET
                    production_complete = 0,
                    production_complete_qty = NULL,
                    production_completed_at = NULL,
                    production_completed_by = NULL,
                    production_complete_reason = NULL,
                    updated_at = ?
                WHERE id = ?
                """,
                [now.isoformat(), wo_id],
            )
            await append_gate_event(
                self.db, wo_id, GateEventType.COMPLETION_REOPENED, actor,
                reason=reason, quantity=work_order.production_complete_qty, at=now,
            )

        logger.info("WO %s production reopened by %s", wo_id, actor)
        self._notify(wo_id)
        return await self.reader.get_work_order(wo_id)

    def _notify(self, wo_id: str) -> None:
        if self.change_feed is not None:
            self.change_feed.publish("work_orders", wo_id)


class ProductionLogService:
    """Append daily production logs, honouring the release/completion lock."""

    def __init__(self, db: Database, reader: Optional[RecordReader] = None, change_feed=None):
        self.db = db
        self.reader = reader or RecordReader(db)
        self.change_feed = change_feed

    async def log(self, wo_id: str, entry: ProductionLogRequest, actor: str) -> ProductionLog:
        work_order = await _require(self.reader, wo_id)
        permission = evaluate_logging_permission(work_order)
        if not permission.allowed:
            raise ProductionLockedError(f"Logging locked for WO {wo_id}: {permission.reason}")

        if entry.route_step_id is not None:
            step = await self.reader.get_route_step(entry.route_step_id)
            if step is None or step.work_order_id != wo_id:
                raise RecordNotFoundError(
                    f"Route step {entry.route_step_id} not found on WO {wo_id}"
                )

        log_date = entry.log_date or date.today()
        async with self.db.transaction():
            # Re-check the lock inside the transaction; a gate may have closed meanwhile.
            cursor = await self.db.execute_write_no_commit(
                """
                UPDATE work_orders SET qty_completed = qty_completed + ?
                WHERE id = ? AND production_complete = 0 AND production_allowed = 1
                """,
                [entry.ok_quantity, wo_id],
            )
            if cursor.rowcount != 1:
                raise ProductionLockedError(f"Logging locked for WO {wo_id}")

            cursor = await self.db.execute_write_no_commit(
                """
                INSERT INTO daily_production_logs (
                    wo_id, route_step_id, log_date, ok_quantity,
                    total_rejection_quantity, total_downtime_minutes,
                    actual_runtime_minutes, created_by
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    wo_id, entry.route_step_id, log_date.isoformat(), entry.ok_quantity,
                    entry.rejection_quantity, entry.downtime_minutes,
                    entry.runtime_minutes, actor,
                ],
            )
            log_id = cursor.lastrowid

            if entry.route_step_id is not None:
                await self.db.execute_write_no_commit(
                    "UPDATE operation_routes SET status = ? WHERE id = ? AND status = ?",
                    [RouteStepStatus.IN_PROGRESS.value, entry.route_step_id,
                     RouteStepStatus.PENDING.value],
                )

        logger.info(
            "Logged %d OK / %d rejected on WO %s (step %s) by %s",
            entry.ok_quantity, entry.rejection_quantity, wo_id, entry.route_step_id, actor,
        )
        if self.change_feed is not None:
            self.change_feed.publish("daily_production_logs", wo_id)

        return ProductionLog(
            id=log_id,
            wo_id=wo_id,
            route_step_id=entry.route_step_id,
            log_date=log_date,
            ok_quantity=entry.ok_quantity,
            total_rejection_quantity=entry.rejection_quantity,
            total_downtime_minutes=entry.downtime_minutes,
            actual_runtime_minutes=entry.runtime_minutes,
            created_by=actor,
        )


async def _require(reader: RecordReader, wo_id: str) -> WorkOrder:
    work_order = await reader.get_work_order(wo_id)
    if work_order is None:
        raise RecordNotFoundError(f"Work order {wo_id} not found")
    return work_order
