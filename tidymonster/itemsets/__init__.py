"""
Item sets — observable collections of files.

Public API:
    ObservableItemSet — base contract: subscribe, start, current_items, dispose
    ItemObserver — subscriber interface (on_added, on_removed, on_error)
    DirectoryWatch — files in one directory matching a glob pattern
    UnionSet — merges several item sets
    FilteredSet — narrows an item set by a predicate
"""

from .errors import (
    ItemSetError,
    ItemSetStartError,
    PartialStartError,
    SourceLostError,
    SubscriptionError,
    ItemSetDisposedError,
)
from .base import (
    CallbackObserver,
    Item,
    ItemObserver,
    ItemSetState,
    ObservableItemSet,
    Subscription,
)
from .directory import DirectoryWatch
from .union import UnionSet
from .filtered import FilteredSet

__all__ = [
    # Errors
    "ItemSetError",
    "ItemSetStartError",
    "PartialStartError",
    "SourceLostError",
    "SubscriptionError",
    "ItemSetDisposedError",
    # Contract
    "Item",
    "ItemObserver",
    "CallbackObserver",
    "ItemSetState",
    "ObservableItemSet",
    "Subscription",
    # Implementations
    "DirectoryWatch",
    "UnionSet",
    "FilteredSet",
]
