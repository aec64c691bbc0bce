"""
Retry job state.

A RetryHandle is the only view callers get of a scheduled job. The scheduler
owns and mutates it; callers read status and wait on completion.
"""

import threading
import uuid
from datetime import datetime
from enum import Enum
from typing import Callable, Optional


class RetryStatus(str, Enum):
    """
    Retry job status.

    Terminal states: SUCCEEDED, WITHDRAWN, CANCELLED, FAILED.
    """

    PENDING = "pending"  # Submitted, first attempt not started
    RUNNING = "running"  # An attempt is executing
    WAITING = "waiting"  # Last attempt failed, backoff in progress
    SUCCEEDED = "succeeded"
    WITHDRAWN = "withdrawn"  # Cancelled individually by its owner
    CANCELLED = "cancelled"  # Cancelled by scheduler shutdown
    FAILED = "failed"  # Work raised a non-recoverable error

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {
    RetryStatus.SUCCEEDED,
    RetryStatus.WITHDRAWN,
    RetryStatus.CANCELLED,
    RetryStatus.FAILED,
}


class RetryHandle:
    """
    Handle to one job submitted to a RetryScheduler.

    `attempts` counts consecutive failures, which is also the attempt number
    passed to the backoff policy for the next wait.
    """

    def __init__(self, work: Callable[[], bool], name: Optional[str] = None):
        self.id = str(uuid.uuid4())
        self.name = name or self.id[:8]

        self._work = work
        self._status = RetryStatus.PENDING
        self._attempts = 0
        self._next_due: Optional[datetime] = None
        self._error: Optional[BaseException] = None

        # Set when the job must stop; wakes a pending backoff wait
        self._cancel = threading.Event()
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def status(self) -> RetryStatus:
        return self._status

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def next_due(self) -> Optional[datetime]:
        """When the next attempt is due, while a backoff wait is in progress."""
        return self._next_due

    @property
    def error(self) -> Optional[BaseException]:
        """Non-recoverable error that terminated the job, if any."""
        return self._error

    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job reaches a terminal state. Returns done()."""
        return self._finished.wait(timeout)

    def __repr__(self) -> str:
        return (
            f"RetryHandle(name={self.name!r}, status={self._status.value}, "
            f"attempts={self._attempts})"
        )
