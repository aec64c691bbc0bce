"""
Retry — bounded exponential backoff and a per-job retry scheduler.

Public API:
    BackoffPolicy — attempt count -> delay, clamped to [minimum, maximum]
    RetryScheduler — runs work, retries failures until success or cancellation
    RetryHandle — caller's view of one scheduled job
    RetryStatus — job lifecycle states
"""

from .errors import RetryError, RecoverableWorkError, SchedulerShutdownError
from .backoff import BackoffPolicy
from .models import RetryHandle, RetryStatus
from .scheduler import RetryScheduler

__all__ = [
    # Errors
    "RetryError",
    "RecoverableWorkError",
    "SchedulerShutdownError",
    # Models
    "RetryHandle",
    "RetryStatus",
    # Core
    "BackoffPolicy",
    "RetryScheduler",
]
