"""
Retry scheduler error hierarchy.

Recoverable work failures never leave the scheduler. Everything else here
signals a misuse of the scheduler by its owner.
"""


class RetryError(Exception):
    """Base exception for retry scheduler failures."""

    pass


class RecoverableWorkError(RetryError):
    """
    Raised by a unit of work to request a retry.

    Equivalent to the work returning False, but carries a reason that ends
    up in the per-attempt log line.
    """

    pass


class SchedulerShutdownError(RetryError):
    """Work was submitted to a scheduler that has already been shut down."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cannot schedule '{name}': scheduler is shut down")
