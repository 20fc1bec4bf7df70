"""Batch ledger: where a work order's quantity physically is right now.

Production batches carry a coarse stage per batch; external moves are the
finer-grained ledger for material sitting at outside processors. When any
move for a work order still has material out, moves are the source for the
external stage and batch rows flagged ``external`` are ignored.

All functions here are pure folds over the input rows. Source data is
written by other tools, so negative or inconsistent quantities are clamped
and logged rather than raised.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Optional

from src.models.batch import (
    ExternalMove,
    ExternalReturnAlert,
    ExternalReturnReport,
    ProductionBatch,
    QuantitySummary,
    StageBreakdown,
)
from src.models.work_order import WorkOrder

logger = logging.getLogger(__name__)

# Stages that count towards split flow and active quantity.
IN_FLIGHT_STAGES = ("production", "external", "qc", "packing")

_STAGE_ALIASES = {
    "cutting": "production",
    "production": "production",
    "external": "external",
    "qc": "qc",
    "packing": "packing",
    "dispatched": "dispatched",
    "dispatch": "dispatched",
}

UNKNOWN_PROCESS = "Unknown"


def canonical_stage(stage_type: Optional[str]) -> str:
    """Map a batch stage_type onto a ledger stage; unknown values are production."""
    key = (stage_type or "").strip().lower()
    return _STAGE_ALIASES.get(key, "production")


def batch_footprint(batch: ProductionBatch, ordered_qty: int) -> int:
    """Quantity a batch occupies.

    A batch recorded with zero quantity stands for the whole order rather
    than an empty batch.
    """
    qty = batch.batch_quantity
    if qty < 0:
        logger.warning(
            "Negative batch_quantity %s on batch %s (WO %s), treating as unset",
            qty, batch.id, batch.wo_id,
        )
        qty = 0
    if qty == 0:
        return max(0, ordered_qty)
    return qty


def _open_move_quantities(moves: Iterable[ExternalMove]) -> list[tuple[str, int]]:
    in_flight = []
    for move in moves:
        if move.is_open and move.quantity_returned > move.quantity_sent:
            logger.warning(
                "External move %s returned %s of %s sent, clamping in-flight to 0",
                move.id, move.quantity_returned, move.quantity_sent,
            )
        qty = move.in_flight_qty
        if qty > 0:
            in_flight.append((move.process or UNKNOWN_PROCESS, qty))
    return in_flight


def aggregate_stages(
    batches: Iterable[ProductionBatch],
    moves: Iterable[ExternalMove] = (),
    ordered_qty: int = 0,
) -> StageBreakdown:
    """Fold one work order's batches and external moves into stage totals."""
    totals = dict.fromkeys((*IN_FLIGHT_STAGES, "dispatched"), 0)
    external_breakdown: dict[str, int] = defaultdict(int)
    total_active = 0

    move_quantities = _open_move_quantities(moves)
    use_moves = bool(move_quantities)
    batch_external_seen = False

    for batch in batches:
        stage = canonical_stage(batch.stage_type)
        qty = batch_footprint(batch, ordered_qty)

        if stage == "external":
            if use_moves:
                continue
            batch_external_seen = True
            external_breakdown[batch.external_process_type or UNKNOWN_PROCESS] += qty

        totals[stage] += qty
        if stage != "dispatched" and batch.is_active:
            total_active += qty

    if use_moves:
        for process, qty in move_quantities:
            totals["external"] += qty
            external_breakdown[process] += qty
            total_active += qty

    stage_count = sum(1 for stage in IN_FLIGHT_STAGES if totals[stage] > 0)

    if use_moves:
        external_source = "moves"
    elif batch_external_seen:
        external_source = "batches"
    else:
        external_source = "none"

    return StageBreakdown(
        production=totals["production"],
        external=totals["external"],
        external_breakdown=dict(external_breakdown),
        qc=totals["qc"],
        packing=totals["packing"],
        dispatched=totals["dispatched"],
        total_active=total_active,
        stage_count=stage_count,
        is_split_flow=stage_count > 1,
        external_source=external_source,
    )


def aggregate_by_work_order(
    batches: Iterable[ProductionBatch],
    moves: Iterable[ExternalMove] = (),
    ordered_qty: Optional[Mapping[str, int]] = None,
) -> dict[str, StageBreakdown]:
    """Stage breakdown for every work order present in either collection."""
    ordered_qty = ordered_qty or {}
    batches_by_wo: dict[str, list[ProductionBatch]] = defaultdict(list)
    moves_by_wo: dict[str, list[ExternalMove]] = defaultdict(list)

    for batch in batches:
        batches_by_wo[batch.wo_id].append(batch)
    for move in moves:
        moves_by_wo[move.work_order_id].append(move)

    wo_ids = sorted(set(batches_by_wo) | set(moves_by_wo))
    return {
        wo_id: aggregate_stages(
            batches_by_wo.get(wo_id, []),
            moves_by_wo.get(wo_id, []),
            ordered_qty.get(wo_id, 0),
        )
        for wo_id in wo_ids
    }


def dispatchable_batches(batches: Iterable[ProductionBatch]) -> list[ProductionBatch]:
    """Batches with QC-approved stock not yet dispatched, in batch order."""
    result = []
    for batch in batches:
        if batch.dispatched_qty > batch.qc_approved_qty:
            logger.warning(
                "Batch %s dispatched %s exceeds approved %s",
                batch.id, batch.dispatched_qty, batch.qc_approved_qty,
            )
        if batch.dispatchable_qty > 0:
            result.append(batch)
    return sorted(result, key=lambda b: (b.wo_id, b.batch_number))


def _pct(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(min(100.0, part / whole * 100), 1)


def summarize_quantities(
    work_order: WorkOrder, batches: Iterable[ProductionBatch]
) -> QuantitySummary:
    """Ordered, produced, approved and dispatched totals with progress percentages."""
    batches = list(batches)
    ordered = max(0, work_order.quantity)
    produced = max(0, work_order.qty_completed)
    approved = sum(max(0, b.qc_approved_qty) for b in batches)
    dispatched = sum(max(0, b.dispatched_qty) for b in batches)

    return QuantitySummary(
        ordered_qty=ordered,
        produced_qty=produced,
        qc_approved_qty=approved,
        dispatched_qty=dispatched,
        dispatchable_qty=sum(b.dispatchable_qty for b in batches),
        remaining_to_produce_qty=max(0, ordered - produced),
        remaining_to_dispatch_qty=max(0, ordered - dispatched),
        production_pct=_pct(produced, ordered),
        qc_pct=_pct(approved, produced),
        dispatch_pct=_pct(dispatched, ordered),
        is_complete=ordered > 0 and dispatched >= ordered,
    )


def external_return_report(
    moves: Iterable[ExternalMove], today: date, due_soon_days: int = 2
) -> ExternalReturnReport:
    """Open moves past their expected return date, or due within ``due_soon_days``."""
    report = ExternalReturnReport(checked_on=today)
    for move in moves:
        if move.expected_return_date is None or move.in_flight_qty <= 0:
            continue
        days = (move.expected_return_date - today).days
        alert = ExternalReturnAlert(
            move=move, in_flight_qty=move.in_flight_qty,
            days_until_due=days, is_overdue=days < 0,
        )
        if days < 0:
            report.overdue.append(alert)
        elif days <= due_soon_days:
            report.due_soon.append(alert)
    report.overdue.sort(key=lambda a: a.days_until_due)
    report.due_soon.sort(key=lambda a: a.days_until_due)
    return report
