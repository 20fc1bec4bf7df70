"""Operation route definition: the planned sequence of steps for a work order.

Sequence numbers form a dense 1..n order per work order, backed by a
UNIQUE(work_order_id, sequence_number) constraint. Every write that touches
sequence numbers runs under a per-work-order lock and inside one
transaction, and swaps park one row on a negative key first, so two rows
never hold the same number even between statements.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections import Counter
from collections.abc import Iterable
from contextlib import asynccontextmanager
from typing import Optional

from src.database.connection import Database
from src.exceptions import RecordNotFoundError, RouteSequenceError
from src.models.route import (
    ExecutionRecord,
    ExecutionStatus,
    MoveDirection,
    RouteStatusReport,
    RouteStep,
    RouteStepCreate,
    RouteStepExecution,
    RouteStepUpdate,
    SequenceCheck,
)
from src.query.record_reader import RecordReader

logger = logging.getLogger(__name__)

TABLE_ROUTES = "operation_routes"


def check_sequence(steps: Iterable[RouteStep]) -> SequenceCheck:
    """Report duplicate and missing sequence numbers (1..max)."""
    counts = Counter(step.sequence_number for step in steps)
    duplicates = sorted(seq for seq, n in counts.items() if n > 1)
    highest = max(counts, default=0)
    gaps = [seq for seq in range(1, highest + 1) if seq not in counts]
    return SequenceCheck(is_valid=not duplicates and not gaps, duplicates=duplicates, gaps=gaps)


def _matches(step: RouteStep, execution: ExecutionRecord) -> bool:
    if execution.operation_type != step.operation_type:
        return False
    return not step.process_name or execution.process_name == step.process_name


def evaluate_route_status(
    steps: list[RouteStep], executions: list[ExecutionRecord]
) -> list[RouteStepExecution]:
    """Compare observed executions against the planned order.

    A step with activity is out of sequence when any earlier mandatory step
    has none.
    """
    ordered = sorted(steps, key=lambda s: s.sequence_number)
    matched = [[e for e in executions if _matches(step, e)] for step in ordered]

    result = []
    for index, step in enumerate(ordered):
        step_execs = matched[index]
        if not step_execs:
            status = ExecutionStatus.PENDING
        elif any(ordered[i].is_mandatory and not matched[i] for i in range(index)):
            status = ExecutionStatus.OUT_OF_SEQUENCE
        else:
            status = ExecutionStatus.ACTIVITY_DETECTED
        result.append(
            RouteStepExecution(
                step=step,
                status=status,
                execution_count=len(step_execs),
                total_quantity=sum(e.quantity for e in step_execs),
            )
        )
    return result


class RouteDefinition:
    """Create, edit, delete and reorder route steps."""

    def __init__(self, db: Database, reader: Optional[RecordReader] = None, change_feed=None):
        self.db = db
        self.reader = reader or RecordReader(db)
        self.change_feed = change_feed
        # wo_id -> (lock, coroutines holding or waiting on it)
        self._locks: dict[str, list] = {}

    async def list_steps(self, wo_id: str) -> list[RouteStep]:
        return await self.reader.get_route_steps(wo_id)

    async def status_report(self, wo_id: str) -> RouteStatusReport:
        steps = await self.reader.get_route_steps(wo_id)
        executions = await self.reader.get_execution_records(wo_id)
        evaluated = evaluate_route_status(steps, executions)
        return RouteStatusReport(
            work_order_id=wo_id,
            steps=evaluated,
            has_out_of_sequence=any(
                e.status == ExecutionStatus.OUT_OF_SEQUENCE for e in evaluated
            ),
            sequence=check_sequence(steps),
        )

    async def add_step(self, wo_id: str, data: RouteStepCreate) -> RouteStep:
        """Append a step at max(sequence) + 1."""
        if await self.reader.get_work_order(wo_id) is None:
            raise RecordNotFoundError(f"Work order {wo_id} not found")

        async with self._wo_lock(wo_id):
            try:
                async with self.db.transaction():
                    cursor = await self.db.execute_write_no_commit(
                        f"""
                        INSERT INTO {TABLE_ROUTES} (
                            work_order_id, sequence_number, operation_type,
                            process_name, is_external, is_mandatory, target_quantity
                        )
                        SELECT ?, COALESCE(MAX(sequence_number), 0) + 1, ?, ?, ?, ?, ?
                        FROM {TABLE_ROUTES}
                        WHERE work_order_id = ?
                        """,
                        [
                            wo_id, data.operation_type.value, data.process_name,
                            data.is_external, data.is_mandatory, data.target_quantity,
                            wo_id,
                        ],
                    )
                    step_id = cursor.lastrowid
            except sqlite3.IntegrityError as exc:
                raise RouteSequenceError(
                    f"Could not assign a sequence number for WO {wo_id}"
                ) from exc

        step = await self.reader.get_route_step(step_id)
        logger.info(
            "Added route step %s (%s) to WO %s at sequence %d",
            step.id, step.operation_type.value, wo_id, step.sequence_number,
        )
        self._notify(wo_id)
        return step

    async def update_step(self, step_id: int, changes: RouteStepUpdate) -> RouteStep:
        """Update step attributes in place; the sequence number is untouched."""
        step = await self._require_step(step_id)
        fields = changes.model_dump(mode="json", exclude_unset=True)
        if not fields:
            return step

        assignments = ", ".join(f"{name} = ?" for name in fields)
        await self.db.execute_write(
            f"UPDATE {TABLE_ROUTES} SET {assignments} WHERE id = ?",
            [*fields.values(), step_id],
        )
        self._notify(step.work_order_id)
        return await self.reader.get_route_step(step_id)

    async def delete_step(self, step_id: int) -> list[RouteStep]:
        """Delete a step and close the gap it leaves. Returns the remaining steps."""
        step = await self._require_step(step_id)
        wo_id = step.work_order_id

        async with self._wo_lock(wo_id):
            async with self.db.transaction():
                await self.db.execute_write_no_commit(
                    f"DELETE FROM {TABLE_ROUTES} WHERE id = ?", [step_id]
                )
                await self._renumber(wo_id)

        logger.info("Deleted route step %s from WO %s", step_id, wo_id)
        self._notify(wo_id)
        return await self.reader.get_route_steps(wo_id)

    async def move_step(self, step_id: int, direction: MoveDirection) -> list[RouteStep]:
        """Swap a step with its neighbour. Moving past either end is a no-op."""
        step = await self._require_step(step_id)
        wo_id = step.work_order_id

        async with self._wo_lock(wo_id):
            steps = await self.reader.get_route_steps(wo_id)
            index = next((i for i, s in enumerate(steps) if s.id == step_id), None)
            if index is None:
                raise RecordNotFoundError(f"Route step {step_id} not found")
            target_index = index - 1 if direction == MoveDirection.UP else index + 1
            if target_index < 0 or target_index >= len(steps):
                return steps

            current, target = steps[index], steps[target_index]
            async with self.db.transaction():
                await self._set_sequence(current, -current.id)
                await self._set_sequence(target, current.sequence_number)
                await self._set_sequence(
                    current.model_copy(update={"sequence_number": -current.id}),
                    target.sequence_number,
                )

        logger.info(
            "Moved route step %s %s on WO %s (%d <-> %d)",
            step_id, direction.value, wo_id, current.sequence_number, target.sequence_number,
        )
        self._notify(wo_id)
        return await self.reader.get_route_steps(wo_id)

    @asynccontextmanager
    async def _wo_lock(self, wo_id: str):
        """Serialize sequence writes per work order; idle locks are dropped."""
        entry = self._locks.setdefault(wo_id, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[wo_id]

    async def _set_sequence(self, step: RouteStep, new_sequence: int) -> None:
        """Optimistic write: fails if someone else changed the row since it was read."""
        cursor = await self.db.execute_write_no_commit(
            f"""
            UPDATE {TABLE_ROUTES} SET sequence_number = ?
            WHERE id = ? AND sequence_number = ?
            """,
            [new_sequence, step.id, step.sequence_number],
        )
        if cursor.rowcount != 1:
            raise RouteSequenceError(
                f"Route step {step.id} changed concurrently; reload and retry"
            )

    async def _renumber(self, wo_id: str) -> None:
        rows = await self.db.execute_read_in_transaction(
            f"""
            SELECT id FROM {TABLE_ROUTES}
            WHERE work_order_id = ?
            ORDER BY sequence_number, id
            """,
            [wo_id],
        )
        ids = [row["id"] for row in rows]
        for step_id in ids:
            await self.db.execute_write_no_commit(
                f"UPDATE {TABLE_ROUTES} SET sequence_number = ? WHERE id = ?",
                [-step_id, step_id],
            )
        for position, step_id in enumerate(ids, start=1):
            await self.db.execute_write_no_commit(
                f"UPDATE {TABLE_ROUTES} SET sequence_number = ? WHERE id = ?",
                [position, step_id],
            )

    async def _require_step(self, step_id: int) -> RouteStep:
        step = await self.reader.get_route_step(step_id)
        if step is None:
            raise RecordNotFoundError(f"Route step {step_id} not found")
        return step

    def _notify(self, wo_id: str) -> None:
        if self.change_feed is not None:
            self.change_feed.publish(TABLE_ROUTES, wo_id)
