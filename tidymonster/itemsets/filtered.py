"""
Filtered set — narrows an item set by a predicate.

The filter remembers which items it let through. A removal is only passed
on for an item that was accepted, so subscribers never see a Removed event
for an item they were never told about.

A predicate that raises is treated as returning False. Predicates usually
inspect the file behind the item, and a file that vanished between
discovery and evaluation is not an error for this layer.
"""

import logging
from typing import Callable, Iterable, Set

from .base import Item, ItemObserver, ObservableItemSet, Subscription
from .errors import ItemSetError

logger = logging.getLogger(__name__)


class FilteredSet(ObservableItemSet):
    def __init__(
        self,
        inner: ObservableItemSet,
        predicate: Callable[[Item], bool],
        name: str = None,
    ):
        self.inner = inner
        self.predicate = predicate
        super().__init__(name=name or f"filter({inner.name})")

        self._accepted: Set[Item] = set()
        self._subscription: Subscription = None

    def _on_start(self) -> None:
        self._subscription = self.inner.subscribe(_FilterObserver(self))
        try:
            self.inner.start()
        finally:
            # Seed from whatever the inner set managed to snapshot; events
            # from it are held on our delivery lock until this is done
            accepted = {item for item in self.inner.current_items() if self._accepts(item)}
            with self._state_lock:
                self._accepted = accepted

    def _accepts(self, item: Item) -> bool:
        try:
            return bool(self.predicate(item))
        except Exception as e:
            logger.debug(f"Predicate failed for {item}, excluding it: {e}")
            return False

    def _snapshot(self) -> Iterable[Item]:
        with self._state_lock:
            return set(self._accepted)

    def _on_dispose(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self.inner.dispose()

    def _inner_added(self, item: Item) -> None:
        with self._delivery_lock:
            if not self.is_running:
                return
            with self._state_lock:
                if item in self._accepted:
                    return
            if not self._accepts(item):
                return
            with self._state_lock:
                self._accepted.add(item)
            self._emit_added(item)

    def _inner_removed(self, item: Item) -> None:
        with self._delivery_lock:
            if not self.is_running:
                return
            with self._state_lock:
                if item not in self._accepted:
                    return
                self._accepted.discard(item)
            self._emit_removed(item)


class _FilterObserver(ItemObserver):
    def __init__(self, filtered: FilteredSet):
        self._filtered = filtered

    def on_added(self, item: Item) -> None:
        self._filtered._inner_added(item)

    def on_removed(self, item: Item) -> None:
        self._filtered._inner_removed(item)

    def on_error(self, error: ItemSetError) -> None:
        self._filtered._emit_error(error)
