"""
Background tidy service.

Runs a TidyOrchestrator on a background thread so an operator surface (the
control API or the CLI) can start and stop tidying at will. The service
mirrors the run in a small status model:

    STOPPED --start()--> STARTED --stop()--> STOPPING --> STOPPED
                            |
                            +-- run failed --> ERRORED (message = error)
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .errors import ServiceAlreadyRunningError
from .orchestrator import TidyOrchestrator

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERRORED = "errored"


class ServiceStatus(BaseModel):
    """Snapshot of the background service for operator surfaces."""

    model_config = ConfigDict(extra="forbid")

    state: ServiceState
    message: str = ""
    started_at: Optional[datetime] = None
    pending_deletes: int = 0


class TidyService:
    """Starts and stops orchestrator runs on a background thread."""

    def __init__(self, orchestrator: TidyOrchestrator):
        self.orchestrator = orchestrator

        self._lock = threading.Lock()
        self._state = ServiceState.STOPPED
        self._message = ""
        self._started_at: Optional[datetime] = None
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state in (ServiceState.STARTED, ServiceState.STOPPING)

    def status(self) -> ServiceStatus:
        with self._lock:
            return ServiceStatus(
                state=self._state,
                message=self._message,
                started_at=self._started_at,
                pending_deletes=self.orchestrator.pending_count(),
            )

    def start(self) -> None:
        """
        Start tidying in the background.

        Raises:
            ServiceAlreadyRunningError: If a run is active or still stopping
        """
        with self._lock:
            if self._state in (ServiceState.STARTED, ServiceState.STOPPING):
                raise ServiceAlreadyRunningError()

            self._cancel = threading.Event()
            self._state = ServiceState.STARTED
            self._message = "Service is running."
            self._started_at = datetime.now()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._cancel,),
                daemon=True,
                name="tidy-service",
            )
            self._thread.start()

        logger.info("Starting background service")

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Request the run to stop. No-op when not running."""
        with self._lock:
            if self._state is not ServiceState.STARTED:
                thread = None
            else:
                self._state = ServiceState.STOPPING
                self._message = "Stopping the service."
                self._cancel.set()
                thread = self._thread

        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self, cancel: threading.Event) -> None:
        try:
            self.orchestrator.run(cancel)
        except Exception as e:
            logger.exception(f"Background service terminated with error: {e}")
            with self._lock:
                self._state = ServiceState.ERRORED
                self._message = str(e) or type(e).__name__
                self._started_at = None
            return

        logger.info("Background service stopped")
        with self._lock:
            self._state = ServiceState.STOPPED
            self._message = ""
            self._started_at = None
