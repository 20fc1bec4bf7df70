"""Production release and completion gates."""
from src.gates.completion import CompletionGate, ProductionLogService
from src.gates.release import ReleaseGate

__all__ = ["CompletionGate", "ProductionLogService", "ReleaseGate"]
