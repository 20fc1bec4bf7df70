"""QC status normalization.

Source records spell results inconsistently ("Pass", "passed", "FAIL",
"not started"...). This module is the only place that maps them onto
``GateStatus``; every gate and every display path goes through
``normalize_qc_status``.
"""

from __future__ import annotations

from typing import Optional, Union

from src.models.qc import GateStatus, QCType

StatusInput = Union[str, GateStatus, None]

_STATUS_ALIASES: dict[str, GateStatus] = {
    "pass": GateStatus.PASSED,
    "passed": GateStatus.PASSED,
    "fail": GateStatus.FAILED,
    "failed": GateStatus.FAILED,
    "hold": GateStatus.HOLD,
    "on_hold": GateStatus.HOLD,
    "waive": GateStatus.WAIVED,
    "waived": GateStatus.WAIVED,
    "blocked": GateStatus.BLOCKED,
    "pending": GateStatus.PENDING,
    "not_started": GateStatus.NOT_STARTED,
    "not started": GateStatus.NOT_STARTED,
}

_QC_TYPE_ALIASES: dict[str, QCType] = {
    "incoming": QCType.INCOMING,
    "material": QCType.INCOMING,
    "raw_material": QCType.INCOMING,
    "first_piece": QCType.FIRST_PIECE,
    "in_process": QCType.IN_PROCESS,
    "hourly": QCType.IN_PROCESS,
    "final": QCType.FINAL,
    "dispatch": QCType.FINAL,
}

COMPLETE_STATUSES = frozenset({GateStatus.PASSED, GateStatus.WAIVED})
ACTIONABLE_STATUSES = frozenset({GateStatus.PENDING, GateStatus.NOT_STARTED})

# Badge tone per status for dashboard widgets.
GATE_TONES: dict[GateStatus, str] = {
    GateStatus.PASSED: "success",
    GateStatus.WAIVED: "success",
    GateStatus.FAILED: "danger",
    GateStatus.HOLD: "warning",
    GateStatus.PENDING: "attention",
    GateStatus.NOT_STARTED: "attention",
    GateStatus.BLOCKED: "muted",
}


def normalize_qc_status(
    status: StatusInput, default: GateStatus = GateStatus.PENDING
) -> GateStatus:
    """Map any stored status spelling onto the canonical enum.

    Matching is case-insensitive and ignores surrounding whitespace.
    Empty and unrecognised values become ``default``.
    """
    if isinstance(status, GateStatus):
        return status
    if status is None:
        return default
    key = str(status).strip().lower()
    if not key:
        return default
    return _STATUS_ALIASES.get(key, default)


def normalize_qc_type(qc_type: Optional[str]) -> Optional[QCType]:
    if not qc_type:
        return None
    return _QC_TYPE_ALIASES.get(qc_type.strip().lower())


def is_gate_complete(status: StatusInput) -> bool:
    """Only passed and waived open a gate; hold and blocked never do."""
    return normalize_qc_status(status) in COMPLETE_STATUSES


def is_gate_failed(status: StatusInput) -> bool:
    return normalize_qc_status(status) == GateStatus.FAILED


def is_gate_on_hold(status: StatusInput) -> bool:
    return normalize_qc_status(status) == GateStatus.HOLD


def is_gate_actionable(status: StatusInput) -> bool:
    """Pending or not started: someone can act on it now."""
    return normalize_qc_status(status) in ACTIONABLE_STATUSES


def gate_tone(status: Optional[GateStatus]) -> Optional[str]:
    if status is None:
        return None
    return GATE_TONES[status]
