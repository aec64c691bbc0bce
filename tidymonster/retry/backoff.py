"""
Exponential backoff.

Maps the number of consecutive failures of a job to the time it waits before
its next attempt. The delay starts at `minimum`, multiplies by `factor` on
every further failure and is clamped at `maximum`.

Example (defaults: 10ms minimum, 1h maximum, factor 2):
    attempt 0  -> 0.01s
    attempt 1  -> 0.02s
    attempt 10 -> 10.24s
    attempt 19 -> 3600s (clamped, and for every attempt after)
"""

import math
from dataclasses import dataclass, field


DEFAULT_MIN_SECONDS = 0.01
DEFAULT_MAX_SECONDS = 3600.0
DEFAULT_FACTOR = 2.0

# Upper bound for operator-configured delays
LONGEST_DELAY_SECONDS = 86400.0


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded geometric backoff. Pure and deterministic."""

    minimum: float = DEFAULT_MIN_SECONDS
    maximum: float = DEFAULT_MAX_SECONDS
    factor: float = DEFAULT_FACTOR

    # First attempt at which the geometric sequence reaches `maximum`
    _saturation: int = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        for name in ("minimum", "maximum", "factor"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"Backoff {name} must be finite: {getattr(self, name)}")
        if not self.minimum > 0:
            raise ValueError(f"Backoff minimum must be positive: {self.minimum}")
        if self.maximum < self.minimum:
            raise ValueError(
                f"Backoff maximum ({self.maximum}) is below minimum ({self.minimum})"
            )
        if not self.factor > 1:
            raise ValueError(f"Backoff factor must be greater than 1: {self.factor}")

        saturation = math.ceil(
            (math.log(self.maximum) - math.log(self.minimum)) / math.log(self.factor)
        )
        object.__setattr__(self, "_saturation", max(0, saturation))

    def delay(self, attempt: int) -> float:
        """
        Seconds to wait before retrying after `attempt` prior failures.

        Raises:
            ValueError: If attempt is negative
        """
        if attempt < 0:
            raise ValueError(f"Attempt count cannot be negative: {attempt}")

        # Large exponents would overflow the float math below
        if attempt >= self._saturation:
            return self.maximum

        return min(self.maximum, self.minimum * self.factor ** attempt)

    @property
    def saturation_attempt(self) -> int:
        """Smallest attempt count whose delay equals `maximum`."""
        return self._saturation
