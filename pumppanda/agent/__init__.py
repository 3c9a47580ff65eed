from .orchestrator import CycleOrchestrator, OrchestratorState
from .scanner import MemeTokenScanner

__all__ = ["CycleOrchestrator", "OrchestratorState", "MemeTokenScanner"]
