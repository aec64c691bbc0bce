"""
Service — the orchestrator and its background controller.

Public API:
    TidyOrchestrator — binds an item set to a delete action via retries
    TidyService — runs the orchestrator on a background thread
    ServiceStatus — operator-facing status snapshot
"""

from .errors import ServiceError, OrchestratorBusyError, ServiceAlreadyRunningError
from .orchestrator import OrchestratorState, TidyOrchestrator
from .controller import ServiceState, ServiceStatus, TidyService

__all__ = [
    # Errors
    "ServiceError",
    "OrchestratorBusyError",
    "ServiceAlreadyRunningError",
    # Core
    "OrchestratorState",
    "TidyOrchestrator",
    "ServiceState",
    "ServiceStatus",
    "TidyService",
]
