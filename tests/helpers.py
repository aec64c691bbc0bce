"""
Shared test doubles and polling helpers.
"""

import threading
import time
from typing import Callable, List, Optional

from tidymonster.itemsets import ItemObserver, ItemSetError, ObservableItemSet
from tidymonster.retry import BackoffPolicy


def wait_until(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll `condition` until it holds or `timeout` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()


class ManualItemSet(ObservableItemSet):
    """
    Item set driven by the test.

    Items added before start() form the initial snapshot; after start()
    add()/remove() emit events like a real source would.
    """

    def __init__(self, name: str = "manual", items=(), fail_start: Optional[ItemSetError] = None):
        super().__init__(name=name)
        self._items = set(items)
        self.fail_start = fail_start
        self.disposed = threading.Event()

    def _on_start(self) -> None:
        if self.fail_start is not None:
            raise self.fail_start

    def _snapshot(self):
        with self._state_lock:
            return set(self._items)

    def _on_dispose(self) -> None:
        self.disposed.set()

    def add(self, item) -> None:
        with self._delivery_lock:
            with self._state_lock:
                if item in self._items:
                    return
                self._items.add(item)
            self._emit_added(item)

    def remove(self, item) -> None:
        with self._delivery_lock:
            with self._state_lock:
                if item not in self._items:
                    return
                self._items.discard(item)
            self._emit_removed(item)

    def fail(self, error: ItemSetError) -> None:
        self._emit_error(error)


class RecordingObserver(ItemObserver):
    """Collects events as ("added" | "removed" | "error", payload) tuples."""

    def __init__(self):
        self.events: List[tuple] = []
        self._lock = threading.Lock()

    def on_added(self, item) -> None:
        with self._lock:
            self.events.append(("added", item))

    def on_removed(self, item) -> None:
        with self._lock:
            self.events.append(("removed", item))

    def on_error(self, error) -> None:
        with self._lock:
            self.events.append(("error", error))

    def of_kind(self, kind: str) -> list:
        with self._lock:
            return [payload for event_kind, payload in self.events if event_kind == kind]

    @property
    def added(self) -> list:
        return self.of_kind("added")

    @property
    def removed(self) -> list:
        return self.of_kind("removed")

    @property
    def errors(self) -> list:
        return self.of_kind("error")


class RecordingBackoff:
    """Backoff policy wrapper that records every attempt it is asked about."""

    def __init__(self, policy: BackoffPolicy):
        self.policy = policy
        self.requested: List[int] = []
        self._lock = threading.Lock()

    def delay(self, attempt: int) -> float:
        with self._lock:
            self.requested.append(attempt)
        return self.policy.delay(attempt)


class FlakyAction:
    """
    Callable that fails a number of times before succeeding.

    fail_times=None fails forever. Failures return False, or raise
    `error` when one is given.
    """

    def __init__(self, fail_times: Optional[int] = 0, error: Optional[BaseException] = None):
        self.fail_times = fail_times
        self.error = error
        self.calls: List[object] = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def __call__(self, item=None) -> bool:
        with self._lock:
            self.calls.append(item)
            attempt = len(self.calls)
        if self.fail_times is None or attempt <= self.fail_times:
            if self.error is not None:
                raise self.error
            return False
        return True


class TimedAction(FlakyAction):
    """FlakyAction that also records when each call happened, and hands
    successful calls on to `action`."""

    def __init__(self, action: Callable, fail_times: Optional[int] = 0):
        super().__init__(fail_times=fail_times)
        self.action = action
        self.stamps: List[float] = []

    def __call__(self, item=None) -> bool:
        with self._lock:
            self.stamps.append(time.monotonic())
        if not super().__call__(item):
            return False
        return self.action(item)

    def gaps(self) -> List[float]:
        with self._lock:
            return [later - earlier for earlier, later in zip(self.stamps, self.stamps[1:])]


class RunInThread:
    """Runs TidyOrchestrator.run on a background thread and keeps its outcome."""

    def __init__(self, orchestrator):
        self.orchestrator = orchestrator
        self.cancel = threading.Event()
        self.error: Optional[BaseException] = None
        self.thread = threading.Thread(target=self._target, daemon=True)

    def _target(self) -> None:
        try:
            self.orchestrator.run(self.cancel)
        except BaseException as e:
            self.error = e

    def start(self) -> "RunInThread":
        self.thread.start()
        return self

    def stop(self, timeout: float = 5.0) -> None:
        self.cancel.set()
        self.thread.join(timeout)
        assert not self.thread.is_alive(), "orchestrator run did not return"
