"""Append-only audit rows written alongside gate transitions.

Both helpers run inside the caller's transaction and never commit.
"""

from datetime import datetime
from typing import Optional

from src.database.connection import Database
from src.models.work_order import GateEventType


async def append_gate_event(
    db: Database,
    wo_id: str,
    event: GateEventType,
    actor: Optional[str],
    reason: Optional[str] = None,
    quantity: Optional[int] = None,
    at: Optional[datetime] = None,
) -> None:
    await db.execute_write_no_commit(
        """
        INSERT INTO wo_gate_events (wo_id, event, actor, reason, quantity, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [wo_id, event.value, actor, reason, quantity, (at or datetime.now()).isoformat()],
    )


async def append_stage_history(
    db: Database,
    wo_id: str,
    from_stage: Optional[str],
    to_stage: str,
    actor: Optional[str],
    reason: Optional[str] = None,
    is_override: bool = False,
    at: Optional[datetime] = None,
) -> None:
    await db.execute_write_no_commit(
        """
        INSERT INTO wo_stage_history (
            wo_id, from_stage, to_stage, changed_at, changed_by, is_override, reason
        )
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            wo_id, from_stage, to_stage, (at or datetime.now()).isoformat(),
            actor, is_override, reason,
        ],
    )
