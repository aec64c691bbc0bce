"""
Service error types.

Raised for misuse of the orchestrator or the background service. Failures
of a run itself (source failures, fatal work errors) keep their original
type and are re-raised from TidyOrchestrator.run().
"""


class ServiceError(Exception):
    """Base exception for service lifecycle failures."""
    pass


class OrchestratorBusyError(ServiceError):
    """Raised when run() is called while a run is already in progress."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Orchestrator is not idle (state: {state})")


class ServiceAlreadyRunningError(ServiceError):
    """Raised when starting a background service that is already running."""

    def __init__(self):
        super().__init__("Tidy service is already running")
