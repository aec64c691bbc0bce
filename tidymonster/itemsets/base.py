"""
Observable item set abstraction.

An item set reports a changing collection of items through Added/Removed
events plus an on-demand snapshot.

Design rules:
- Exactly one live subscriber per instance; fan-out is done by composition
- No events before start()
- Events are delivered one at a time, in emission order
- No event is delivered once dispose() has returned

Locking:
    _delivery_lock  serializes start, emission and dispose. Held while the
                    subscriber runs, so subscribers must not block.
    _state_lock     guards lifecycle state and the subscriber slot. Never
                    held while calling out. current_items() only takes this
                    lock, so composites can snapshot their sources while an
                    event from those sources is waiting on them.
"""

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, FrozenSet, Hashable, Iterable, Optional

from .errors import ItemSetDisposedError, ItemSetError, SubscriptionError

logger = logging.getLogger(__name__)


Item = Hashable


class ItemSetState(str, Enum):
    CREATED = "created"
    STARTED = "started"
    DISPOSED = "disposed"


class ItemObserver(ABC):
    """Receives events from one item set."""

    @abstractmethod
    def on_added(self, item: Item) -> None:
        pass

    @abstractmethod
    def on_removed(self, item: Item) -> None:
        pass

    def on_error(self, error: ItemSetError) -> None:
        """Called when the source fails permanently while running."""
        logger.error(f"Item set failure ignored by {type(self).__name__}: {error}")


class CallbackObserver(ItemObserver):
    """Adapts plain callables to ItemObserver."""

    def __init__(
        self,
        on_added: Callable[[Item], None],
        on_removed: Callable[[Item], None],
        on_error: Optional[Callable[[ItemSetError], None]] = None,
    ):
        self._on_added = on_added
        self._on_removed = on_removed
        self._on_error = on_error

    def on_added(self, item: Item) -> None:
        self._on_added(item)

    def on_removed(self, item: Item) -> None:
        self._on_removed(item)

    def on_error(self, error: ItemSetError) -> None:
        if self._on_error is None:
            super().on_error(error)
        else:
            self._on_error(error)


class Subscription:
    """The one live link between an item set and its subscriber."""

    def __init__(self, source: "ObservableItemSet", observer: ItemObserver):
        self.source = source
        self.observer = observer

    def close(self) -> None:
        """Release the subscriber slot. Idempotent."""
        self.source.unsubscribe(self.observer)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ObservableItemSet(ABC):
    """
    Base class for item sets.

    Subclasses implement:
    - _on_start: begin observing; called with the delivery lock held
    - _snapshot: currently present items
    - _on_dispose: release resources; called after the set is marked disposed
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__
        self._state = ItemSetState.CREATED
        self._subscriber: Optional[ItemObserver] = None
        self._state_lock = threading.Lock()
        self._delivery_lock = threading.RLock()

    @property
    def state(self) -> ItemSetState:
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is ItemSetState.STARTED

    def subscribe(self, observer: ItemObserver) -> Subscription:
        """
        Attach the single subscriber.

        Raises:
            SubscriptionError: If a subscriber is already attached
            ItemSetDisposedError: If the set has been disposed
        """
        with self._state_lock:
            if self._state is ItemSetState.DISPOSED:
                raise ItemSetDisposedError(self.name)
            if self._subscriber is not None:
                raise SubscriptionError(
                    f"Item set '{self.name}' already has a subscriber"
                )
            self._subscriber = observer
        return Subscription(self, observer)

    def unsubscribe(self, observer: ItemObserver) -> None:
        with self._state_lock:
            if self._subscriber is observer:
                self._subscriber = None

    def start(self) -> None:
        """
        Begin producing events.

        The set counts as started even if _on_start raises, so that a
        partially started composite keeps delivering from its healthy
        sources. Callers dispose the set on failure either way.

        Raises:
            ItemSetDisposedError: If the set has been disposed
            ItemSetError: If the set was already started
            ItemSetStartError: If the underlying source could not start
        """
        with self._delivery_lock:
            with self._state_lock:
                if self._state is ItemSetState.DISPOSED:
                    raise ItemSetDisposedError(self.name)
                if self._state is ItemSetState.STARTED:
                    raise ItemSetError(f"Item set '{self.name}' already started")
                self._state = ItemSetState.STARTED

            self._on_start()

        logger.debug(f"Item set '{self.name}' started")

    def current_items(self) -> FrozenSet[Item]:
        """
        Snapshot of the items currently present.

        Eventually consistent with the event stream within one notification
        cycle: an event that is waiting for delivery may already be
        reflected in the snapshot.
        """
        with self._state_lock:
            if self._state is ItemSetState.DISPOSED:
                raise ItemSetDisposedError(self.name)
        return frozenset(self._snapshot())

    def dispose(self) -> None:
        """Stop producing events and release resources. Idempotent."""
        # Waits for an in-progress delivery to finish
        with self._delivery_lock:
            with self._state_lock:
                if self._state is ItemSetState.DISPOSED:
                    return
                self._state = ItemSetState.DISPOSED
                self._subscriber = None

        self._on_dispose()
        logger.debug(f"Item set '{self.name}' disposed")

    def __enter__(self) -> "ObservableItemSet":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    # -------------------------------------------------------------------------
    # Emission helpers for subclasses
    # -------------------------------------------------------------------------

    def _live_subscriber(self) -> Optional[ItemObserver]:
        with self._state_lock:
            if self._state is not ItemSetState.STARTED:
                return None
            return self._subscriber

    def _emit_added(self, item: Item) -> None:
        with self._delivery_lock:
            subscriber = self._live_subscriber()
            if subscriber is not None:
                subscriber.on_added(item)

    def _emit_removed(self, item: Item) -> None:
        with self._delivery_lock:
            subscriber = self._live_subscriber()
            if subscriber is not None:
                subscriber.on_removed(item)

    def _emit_error(self, error: ItemSetError) -> None:
        with self._delivery_lock:
            subscriber = self._live_subscriber()
            if subscriber is None:
                logger.warning(f"Item set '{self.name}' failed with no subscriber: {error}")
                return
            subscriber.on_error(error)

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def _on_start(self) -> None:
        pass

    @abstractmethod
    def _snapshot(self) -> Iterable[Item]:
        pass

    def _on_dispose(self) -> None:
        pass
