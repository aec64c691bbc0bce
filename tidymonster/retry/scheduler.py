"""
Per-job retry scheduler.

Runs units of work and retries each failing one after a backoff delay until
it succeeds, is withdrawn, or the scheduler shuts down.

Design rules:
- One worker thread per job, each with its own cancellable wait
- No global queue or timer: a stuck job never delays another job
- Attempts of one job are strictly sequential
- A job's attempt counter only ever grows; a fresh run() starts at 0
- Cancellation never interrupts a running attempt, it discards its result

Work contract:
    work() -> bool
    True                     success, job completes
    False                    failure, retried after backoff
    recoverable exception    failure, retried after backoff
    any other exception      fatal, job stops and on_fatal is notified
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple, Type

from .backoff import BackoffPolicy
from .errors import RecoverableWorkError, SchedulerShutdownError
from .models import RetryHandle, RetryStatus

logger = logging.getLogger(__name__)


DEFAULT_RECOVERABLE: Tuple[Type[BaseException], ...] = (OSError, RecoverableWorkError)


class RetryScheduler:
    """
    Executes work with indefinite, bounded-backoff retries.

    Callbacks run on the job's worker thread, outside the scheduler lock:
        on_complete(handle)     once, when the job reaches a terminal state
        on_fatal(handle, exc)   when work raises a non-recoverable error
    """

    def __init__(
        self,
        backoff: Optional[BackoffPolicy] = None,
        recoverable: Tuple[Type[BaseException], ...] = DEFAULT_RECOVERABLE,
        on_complete: Optional[Callable[[RetryHandle], None]] = None,
        on_fatal: Optional[Callable[[RetryHandle, BaseException], None]] = None,
    ):
        self.backoff = backoff or BackoffPolicy()
        self.recoverable = recoverable
        self._on_complete = on_complete
        self._on_fatal = on_fatal

        self._lock = threading.Lock()
        self._jobs: Dict[str, RetryHandle] = {}
        # Requested terminal status for cancelled jobs, applied on exit
        self._cancel_status: Dict[str, RetryStatus] = {}
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        with self._lock:
            return self._shutdown

    def pending_count(self) -> int:
        """Number of jobs not yet in a terminal state."""
        with self._lock:
            return len(self._jobs)

    def active_handles(self) -> List[RetryHandle]:
        with self._lock:
            return list(self._jobs.values())

    def run(self, work: Callable[[], bool], name: Optional[str] = None) -> RetryHandle:
        """
        Start executing `work` on its own worker.

        Raises:
            SchedulerShutdownError: If shutdown() has already been called
        """
        handle = RetryHandle(work, name=name)

        with self._lock:
            if self._shutdown:
                raise SchedulerShutdownError(handle.name)

            self._jobs[handle.id] = handle
            handle._thread = threading.Thread(
                target=self._job_loop,
                args=(handle,),
                daemon=True,
                name=f"retry-{handle.name}",
            )
            handle._thread.start()

        logger.debug(f"[RetryScheduler] Job '{handle.name}' submitted")
        return handle

    def withdraw(self, handle: RetryHandle) -> bool:
        """
        Cancel one job without affecting others.

        A running attempt finishes but its result is discarded.

        Returns:
            True if the job was live and is now cancelled
        """
        with self._lock:
            if handle.id not in self._jobs or handle._cancel.is_set():
                return False
            self._cancel_status[handle.id] = RetryStatus.WITHDRAWN
            handle._cancel.set()

        logger.debug(f"[RetryScheduler] Job '{handle.name}' withdrawn")
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Cancel every job.

        With wait=True, blocks until every worker has exited, so no job of
        this scheduler executes after the call returns. Safe to call more
        than once and from any thread.
        """
        with self._lock:
            first_call = not self._shutdown
            self._shutdown = True
            handles = list(self._jobs.values())
            for handle in handles:
                self._cancel_status.setdefault(handle.id, RetryStatus.CANCELLED)
                handle._cancel.set()

        if first_call:
            logger.debug(
                f"[RetryScheduler] Shutting down, cancelling {len(handles)} job(s)"
            )

        if not wait:
            return

        current = threading.current_thread()
        for handle in handles:
            if handle._thread is not None and handle._thread is not current:
                handle._thread.join(timeout)

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _job_loop(self, handle: RetryHandle) -> None:
        final_status = None

        try:
            while True:
                with self._lock:
                    if handle._cancel.is_set():
                        return
                    handle._status = RetryStatus.RUNNING
                    handle._next_due = None

                succeeded, reason = self._attempt(handle)

                with self._lock:
                    if handle._cancel.is_set():
                        # Result of an in-flight attempt is discarded
                        return
                    if succeeded:
                        final_status = RetryStatus.SUCCEEDED
                        return

                    handle._attempts += 1
                    delay = self.backoff.delay(handle._attempts - 1)
                    # Longer timeouts overflow the platform wait
                    wait_seconds = min(delay, threading.TIMEOUT_MAX)
                    handle._status = RetryStatus.WAITING
                    handle._next_due = datetime.now() + timedelta(seconds=wait_seconds)

                logger.warning(
                    f"[RetryScheduler] '{handle.name}' attempt {handle.attempts} failed"
                    f" ({reason}); retrying in {delay:.2f}s"
                )

                if handle._cancel.wait(wait_seconds):
                    return

        except Exception as e:
            final_status = RetryStatus.FAILED
            handle._error = e
            logger.exception(
                f"[RetryScheduler] '{handle.name}' raised a non-recoverable error: {e}"
            )
            if self._on_fatal is not None:
                self._on_fatal(handle, e)

        finally:
            self._finish(handle, final_status)

    def _attempt(self, handle: RetryHandle) -> Tuple[bool, str]:
        """Run one attempt. Non-recoverable exceptions propagate."""
        try:
            result = handle._work()
        except self.recoverable as e:
            return False, f"{type(e).__name__}: {e}"

        if result:
            return True, ""
        return False, "work reported failure"

    def _finish(self, handle: RetryHandle, status: Optional[RetryStatus]) -> None:
        with self._lock:
            cancel_status = self._cancel_status.pop(handle.id, RetryStatus.CANCELLED)
            handle._status = status or cancel_status
            handle._next_due = None
            self._jobs.pop(handle.id, None)

        handle._finished.set()
        logger.debug(
            f"[RetryScheduler] Job '{handle.name}' finished: {handle.status.value}"
            f" after {handle.attempts} failure(s)"
        )

        if self._on_complete is not None:
            try:
                self._on_complete(handle)
            except Exception as e:
                logger.exception(
                    f"[RetryScheduler] Completion callback failed for '{handle.name}': {e}"
                )
