"""Record reader for the engine's source tables.

Every recomputation re-reads the rows it needs through this class; nothing
here caches. Rows are mapped by column name into the pydantic models.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Sequence

from src.database.connection import Database
from src.models.batch import ExternalMove, ProductionBatch
from src.models.progress import ProductionLog
from src.models.qc import QCRecord
from src.models.route import ExecutionRecord, RouteStep
from src.models.work_order import GateEvent, StageHistoryEntry, WorkOrder

logger = logging.getLogger(__name__)


def _where_in(column: str, values: Optional[Sequence]) -> tuple[str, list]:
    """Build an optional ``WHERE column IN (...)`` clause."""
    if values is None:
        return "", []
    if not values:
        return "WHERE 1 = 0", []
    placeholders = ",".join(["?"] * len(values))
    return f"WHERE {column} IN ({placeholders})", list(values)


class RecordReader:
    """Read work order records from SQLite into models."""

    def __init__(self, db: Database):
        self.db = db

    async def get_work_order(self, wo_id: str) -> Optional[WorkOrder]:
        rows = await self.db.execute_read("SELECT * FROM work_orders WHERE id = ?", [wo_id])
        return WorkOrder(**dict(rows[0])) if rows else None

    async def get_work_orders(self, wo_ids: Optional[Sequence[str]] = None) -> list[WorkOrder]:
        where, params = _where_in("id", wo_ids)
        rows = await self.db.execute_read(
            f"SELECT * FROM work_orders {where} ORDER BY id", params
        )
        return [WorkOrder(**dict(row)) for row in rows]

    async def get_route_steps(self, wo_id: str) -> list[RouteStep]:
        rows = await self.db.execute_read(
            """
            SELECT * FROM operation_routes
            WHERE work_order_id = ?
            ORDER BY sequence_number, id
            """,
            [wo_id],
        )
        return [RouteStep(**dict(row)) for row in rows]

    async def get_route_step(self, step_id: int) -> Optional[RouteStep]:
        rows = await self.db.execute_read(
            "SELECT * FROM operation_routes WHERE id = ?", [step_id]
        )
        return RouteStep(**dict(rows[0])) if rows else None

    async def get_batches(self, wo_ids: Optional[Sequence[str]] = None) -> list[ProductionBatch]:
        where, params = _where_in("wo_id", wo_ids)
        rows = await self.db.execute_read(
            f"SELECT * FROM production_batches {where} ORDER BY wo_id, batch_number", params
        )
        return [ProductionBatch(**dict(row)) for row in rows]

    async def get_external_moves(
        self, wo_ids: Optional[Sequence[str]] = None
    ) -> list[ExternalMove]:
        where, params = _where_in("work_order_id", wo_ids)
        rows = await self.db.execute_read(
            f"SELECT * FROM wo_external_moves {where} ORDER BY work_order_id, id", params
        )
        return [ExternalMove(**dict(row)) for row in rows]

    async def get_qc_records(self, wo_id: str) -> list[QCRecord]:
        rows = await self.db.execute_read(
            "SELECT * FROM qc_records WHERE wo_id = ? ORDER BY id", [wo_id]
        )
        return [self._row_to_qc_record(row) for row in rows]

    async def get_production_logs(self, wo_id: str) -> list[ProductionLog]:
        rows = await self.db.execute_read(
            "SELECT * FROM daily_production_logs WHERE wo_id = ? ORDER BY log_date, id",
            [wo_id],
        )
        return [ProductionLog(**dict(row)) for row in rows]

    async def get_execution_records(self, wo_id: str) -> list[ExecutionRecord]:
        rows = await self.db.execute_read(
            "SELECT * FROM execution_records WHERE work_order_id = ? ORDER BY created_at, id",
            [wo_id],
        )
        return [ExecutionRecord(**dict(row)) for row in rows]

    async def get_stage_history(self, wo_id: str) -> list[StageHistoryEntry]:
        rows = await self.db.execute_read(
            "SELECT * FROM wo_stage_history WHERE wo_id = ? ORDER BY changed_at, id",
            [wo_id],
        )
        return [StageHistoryEntry(**dict(row)) for row in rows]

    async def get_gate_events(self, wo_id: str) -> list[GateEvent]:
        rows = await self.db.execute_read(
            "SELECT * FROM wo_gate_events WHERE wo_id = ? ORDER BY created_at, id",
            [wo_id],
        )
        return [GateEvent(**dict(row)) for row in rows]

    @staticmethod
    def _row_to_qc_record(row) -> QCRecord:
        data = dict(row)
        raw = data.pop("measurements", None)
        measurements = {}
        if raw:
            try:
                measurements = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Unparseable measurements on QC record %s", data.get("id"))
        if not isinstance(measurements, dict):
            measurements = {"values": measurements}
        return QCRecord(**data, measurements=measurements)
