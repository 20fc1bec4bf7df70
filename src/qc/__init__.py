"""QC status normalization and gate resolution."""
from src.qc.gate_resolver import QCGateResolver
from src.qc.status import normalize_qc_status

__all__ = ["QCGateResolver", "normalize_qc_status"]
