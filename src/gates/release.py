"""Production release gate.

A work order may start production only after both material QC and
first-piece QC are complete (passed or waived). The decision is made on the
stored statuses; the ``blocked`` display status of the first-piece gate
never feeds back into it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from src.database.connection import Database
from src.exceptions import GateValidationError, RecordNotFoundError
from src.gates.events import append_gate_event, append_stage_history
from src.models.gates import ReleaseDecision
from src.models.work_order import GateEventType, ReleaseStatus, WorkOrder
from src.qc.status import is_gate_complete
from src.query.record_reader import RecordReader

logger = logging.getLogger(__name__)

PRODUCTION_STAGE = "production"


def evaluate_release(work_order: WorkOrder) -> ReleaseDecision:
    material_complete = is_gate_complete(work_order.material_status)
    first_piece_complete = is_gate_complete(work_order.qc_first_piece_status)

    reasons = []
    if work_order.is_released:
        reasons.append("Work order is already released")
    if not material_complete:
        reasons.append("Material QC is not passed or waived")
    if not first_piece_complete:
        reasons.append("First-piece QC is not passed or waived")

    return ReleaseDecision(
        can_release=material_complete and first_piece_complete and not work_order.is_released,
        is_released=work_order.is_released,
        material_complete=material_complete,
        first_piece_complete=first_piece_complete,
        reasons=reasons,
    )


class ReleaseGate:
    """Release a work order to production, or take the release back."""

    def __init__(self, db: Database, reader: Optional[RecordReader] = None, change_feed=None):
        self.db = db
        self.reader = reader or RecordReader(db)
        self.change_feed = change_feed

    async def release(self, wo_id: str, actor: str, notes: Optional[str] = None) -> WorkOrder:
        work_order = await self._require(wo_id)
        decision = evaluate_release(work_order)
        if not decision.can_release:
            raise GateValidationError("; ".join(decision.reasons))

        now = datetime.now()
        async with self.db.transaction():
            cursor = await self.db.execute_write_no_commit(
                """
                UPDATE work_orders SET
                    production_release_status = ?,
                    production_release_date = ?,
                    production_released_by = ?,
                    production_release_notes = ?,
                    production_allowed = 1,
                    current_stage = ?,
                    updated_at = ?
                WHERE id = ? AND production_release_status != ?
                """,
                [
                    ReleaseStatus.RELEASED.value, now.isoformat(), actor, notes,
                    PRODUCTION_STAGE, now.isoformat(), wo_id, ReleaseStatus.RELEASED.value,
                ],
            )
            if cursor.rowcount != 1:
                raise GateValidationError(f"Work order {wo_id} was released concurrently")

            if work_order.current_stage != PRODUCTION_STAGE:
                await append_stage_history(
                    self.db, wo_id, work_order.current_stage, PRODUCTION_STAGE,
                    actor, reason="Production release", at=now,
                )
            await append_gate_event(
                self.db, wo_id, GateEventType.RELEASED, actor, reason=notes, at=now
            )

        logger.info("WO %s released to production by %s", wo_id, actor)
        self._notify(wo_id)
        return await self.reader.get_work_order(wo_id)

    async def reopen(self, wo_id: str, actor: str, reason: Optional[str] = None) -> WorkOrder:
        work_order = await self._require(wo_id)
        if not work_order.is_released:
            raise GateValidationError(f"Work order {wo_id} is not released")

        now = datetime.now()
        async with self.db.transaction():
            await self.db.execute_write_no_commit(
                """
                UPDATE work_orders SET
                    production_release_status = ?,
                    production_release_date = NULL,
                    production_released_by = NULL,
                    production_release_notes = NULL,
                    production_allowed = 0,
                    updated_at = ?
                WHERE id = ?
                """,
                [ReleaseStatus.NOT_RELEASED.value, now.isoformat(), wo_id],
            )
            await append_gate_event(
                self.db, wo_id, GateEventType.RELEASE_REOPENED, actor, reason=reason, at=now
            )

        logger.info("WO %s release reopened by %s", wo_id, actor)
        self._notify(wo_id)
        return await self.reader.get_work_order(wo_id)

    async def _require(self, wo_id: str) -> WorkOrder:
        work_order = await self.reader.get_work_order(wo_id)
        if work_order is None:
            raise RecordNotFoundError(f"Work order {wo_id} not found")
        return work_order

    def _notify(self, wo_id: str) -> None:
        if self.change_feed is not None:
            self.change_feed.publish("work_orders", wo_id)
