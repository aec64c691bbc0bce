"""
Tidy orchestrator — binds an item set to a delete action.

Every item reported by the item set gets a delete job on a retry scheduler.
Jobs retry with backoff until the delete succeeds, the item disappears from
the set, or the run is cancelled.

State machine per run:
    IDLE -> RUNNING -> STOPPING -> IDLE

A run owns one item set, its subscription and one retry scheduler. They are
created together when the run starts and released together when it stops.
run() only returns once all three are released, so a new run can start
immediately afterwards.
"""

import logging
import threading
from enum import Enum
from functools import partial
from typing import Callable, Dict, Hashable, Optional

from ..itemsets import (
    ItemObserver,
    ItemSetError,
    ObservableItemSet,
    PartialStartError,
    Subscription,
)
from ..retry import BackoffPolicy, RetryHandle, RetryScheduler, RetryStatus
from ..retry.errors import SchedulerShutdownError
from .errors import OrchestratorBusyError

logger = logging.getLogger(__name__)


# How often a running orchestrator checks for a failed run while it waits
# for cancellation
DEFAULT_POLL_INTERVAL = 0.1


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


class TidyOrchestrator:
    """
    Runs the watch-retry-delete loop.

    Args:
        item_set_factory: Builds a fresh item set for each run, so
            configuration changes apply on the next run
        delete: Deletes one item. Returns True on success (an item that is
            already gone counts as success); False or OSError means retry
        backoff: Retry delay policy shared by every run
        tolerate_partial_start: Keep running when only some sources of a
            composite item set started
    """

    def __init__(
        self,
        item_set_factory: Callable[[], ObservableItemSet],
        delete: Callable[[Hashable], bool],
        backoff: Optional[BackoffPolicy] = None,
        tolerate_partial_start: bool = False,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.item_set_factory = item_set_factory
        self.delete = delete
        self.backoff = backoff or BackoffPolicy()
        self.tolerate_partial_start = tolerate_partial_start
        self.poll_interval = poll_interval

        self._lock = threading.Lock()
        self._state = OrchestratorState.IDLE
        self._current: Optional["_TidyRun"] = None

    @property
    def state(self) -> OrchestratorState:
        with self._lock:
            return self._state

    def pending_count(self) -> int:
        """Delete jobs still waiting to succeed in the current run."""
        with self._lock:
            current = self._current
        return current.scheduler.pending_count() if current else 0

    def run(self, cancel: threading.Event) -> None:
        """
        Tidy until `cancel` is set.

        Blocks for the whole run. Setting `cancel` stops event delivery,
        disposes the item set and shuts the retry scheduler down; run()
        returns after all of that has completed.

        Raises:
            OrchestratorBusyError: If another run is in progress
            ItemSetError: If the item set failed to start or lost its source
            Exception: A non-recoverable error raised by the delete action
        """
        with self._lock:
            if self._state is not OrchestratorState.IDLE:
                raise OrchestratorBusyError(self._state.value)
            self._state = OrchestratorState.RUNNING

        logger.info("Tidying started")
        current = None

        try:
            current = _TidyRun(
                item_set=self.item_set_factory(),
                delete=self.delete,
                backoff=self.backoff,
            )
            with self._lock:
                self._current = current

            current.open(self.tolerate_partial_start)

            while not cancel.wait(self.poll_interval):
                if current.failed.is_set():
                    break

        finally:
            with self._lock:
                self._state = OrchestratorState.STOPPING

            try:
                if current is not None:
                    current.close()
            finally:
                with self._lock:
                    self._current = None
                    self._state = OrchestratorState.IDLE
                logger.info("Tidying stopped")

        if current.failure is not None:
            raise current.failure


class _TidyRun(ItemObserver):
    """
    Run context: one item set, its subscription and one retry scheduler.

    Receives item events on the item set's delivery thread and never blocks
    there: deletes run on the scheduler's workers.
    """

    def __init__(
        self,
        item_set: ObservableItemSet,
        delete: Callable[[Hashable], bool],
        backoff: BackoffPolicy,
    ):
        self.item_set = item_set
        self.delete = delete
        self.scheduler = RetryScheduler(
            backoff,
            on_complete=self._job_finished,
            on_fatal=self._job_crashed,
        )

        self.failed = threading.Event()
        self.failure: Optional[BaseException] = None

        self._lock = threading.Lock()
        self._jobs: Dict[Hashable, RetryHandle] = {}
        self._subscription: Optional[Subscription] = None

    def open(self, tolerate_partial_start: bool) -> None:
        self._subscription = self.item_set.subscribe(self)

        try:
            self.item_set.start()
        except PartialStartError as e:
            if not tolerate_partial_start or e.started == 0:
                raise
            logger.warning(f"Continuing with {e.started} running source(s): {e}")

        # Items present before the watch began never produce Added events
        for item in self.item_set.current_items():
            self.submit(item)

    def close(self) -> None:
        try:
            if self._subscription is not None:
                self._subscription.close()
            self.item_set.dispose()
        finally:
            self.scheduler.shutdown(wait=True)

    def submit(self, item: Hashable) -> None:
        with self._lock:
            existing = self._jobs.get(item)
            if existing is not None and not existing.done():
                return
            try:
                self._jobs[item] = self.scheduler.run(
                    partial(self.delete, item), name=str(item)
                )
            except SchedulerShutdownError:
                logger.debug(f"Run is stopping, not scheduling delete of {item}")

    # -------------------------------------------------------------------------
    # ItemObserver
    # -------------------------------------------------------------------------

    def on_added(self, item: Hashable) -> None:
        self.submit(item)

    def on_removed(self, item: Hashable) -> None:
        with self._lock:
            handle = self._jobs.pop(item, None)
        if handle is not None and self.scheduler.withdraw(handle):
            logger.info(f"{item} is gone, withdrew pending delete")

    def on_error(self, error: ItemSetError) -> None:
        self._fail(error)

    # -------------------------------------------------------------------------
    # Scheduler callbacks
    # -------------------------------------------------------------------------

    def _job_finished(self, handle: RetryHandle) -> None:
        with self._lock:
            for item, job in list(self._jobs.items()):
                if job is handle:
                    del self._jobs[item]
                    break

        if handle.status is RetryStatus.SUCCEEDED:
            logger.debug(f"Deleted {handle.name} after {handle.attempts} failed attempt(s)")

    def _job_crashed(self, handle: RetryHandle, error: BaseException) -> None:
        self._fail(error)

    def _fail(self, error: BaseException) -> None:
        with self._lock:
            if self.failure is None:
                self.failure = error
        self.failed.set()
