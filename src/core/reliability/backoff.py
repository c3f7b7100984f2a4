"""
Backoff policy — bounded retries with exponential delays.

Used by steps that retry internally (the installer download).
The step sequencer itself never retries.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    """Attempt budget and delay schedule.

    ``delay_for(n)`` is the wait after the n-th failed attempt
    (1-based): ``base_delay * 2 ** (n - 1)``, capped at ``max_delay``.
    With the defaults that is 2, 4, 8, 16, 30 seconds.
    """

    max_attempts: int = 5
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0  # fraction of the delay added at random

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt``."""
        delay = min(self.base_delay * (2 ** (max(attempt, 1) - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        logger.debug(
            "Backoff after attempt %d/%d: %.1fs", attempt, self.max_attempts, delay,
        )
        return delay

    def exhausted(self, attempt: int) -> bool:
        """Whether ``attempt`` was the last one allowed."""
        return attempt >= self.max_attempts

    def to_dict(self) -> dict[str, float | int]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "jitter": self.jitter,
        }
