"""
Union — merges several item sets into one.

Every event from every source is forwarded unchanged. Sources are expected
to be disjoint (distinct directories), so an item reported by two sources is
passed through as two Added events rather than deduplicated.
"""

import logging
from typing import Iterable, List, Sequence, Set

from .base import Item, ItemObserver, ObservableItemSet, Subscription
from .errors import ItemSetError, PartialStartError

logger = logging.getLogger(__name__)


class UnionSet(ObservableItemSet):
    """
    Set union of N item sets.

    start() starts every source even if some fail; failures are collected
    and raised together as PartialStartError once the others are running.
    """

    def __init__(self, sources: Sequence[ObservableItemSet], name: str = None):
        self.sources: List[ObservableItemSet] = list(sources)
        super().__init__(
            name=name or "union(" + ", ".join(s.name for s in self.sources) + ")"
        )
        self._subscriptions: List[Subscription] = []

    def _on_start(self) -> None:
        failures = []

        for source in self.sources:
            self._subscriptions.append(source.subscribe(_Forwarder(self)))
            try:
                source.start()
            except ItemSetError as e:
                logger.warning(f"Source '{source.name}' failed to start: {e}")
                failures.append((source.name, e))

        if failures:
            raise PartialStartError(failures, started=len(self.sources) - len(failures))

    def _snapshot(self) -> Iterable[Item]:
        items: Set[Item] = set()
        for source in self.sources:
            items.update(source.current_items())
        return items

    def _on_dispose(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()

        errors = []
        for source in self.sources:
            try:
                source.dispose()
            except Exception as e:
                logger.exception(f"Failed to dispose source '{source.name}': {e}")
                errors.append(e)

        if errors:
            raise errors[0]


class _Forwarder(ItemObserver):
    def __init__(self, union: UnionSet):
        self._union = union

    def on_added(self, item: Item) -> None:
        self._union._emit_added(item)

    def on_removed(self, item: Item) -> None:
        self._union._emit_removed(item)

    def on_error(self, error: ItemSetError) -> None:
        self._union._emit_error(error)
