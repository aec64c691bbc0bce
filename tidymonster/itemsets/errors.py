"""
Item set error hierarchy.

Start and loss failures are source failures: they end the orchestrator run
and are reported to its caller. Subscription and disposal errors are
contract violations by the code driving the set.
"""

from typing import List, Tuple


class ItemSetError(Exception):
    """Base exception for observable item set failures."""

    pass


class ItemSetStartError(ItemSetError):
    """An item set could not begin producing events."""

    pass


class PartialStartError(ItemSetStartError):
    """
    Some sources of a composite set failed to start.

    The sources that did start keep running; the owner decides whether to
    proceed with them.
    """

    def __init__(self, failures: List[Tuple[str, ItemSetError]], started: int):
        self.failures = failures
        self.started = started
        details = "; ".join(f"{name}: {error}" for name, error in failures)
        super().__init__(
            f"{len(failures)} source(s) failed to start ({started} running): {details}"
        )


class SourceLostError(ItemSetError):
    """A running item set permanently lost its underlying source."""

    pass


class SubscriptionError(ItemSetError):
    """An item set already has its one subscriber."""

    pass


class ItemSetDisposedError(ItemSetError):
    """Operation attempted on a disposed item set."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Item set '{name}' has been disposed")
