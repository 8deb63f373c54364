"""Retry policy shared by the embedder and the similarity queries.

Delays grow exponentially from ``base_delay`` and are capped at
``max_delay``.  ``jitter`` spreads each delay by up to that fraction in
either direction so concurrent batch workers do not retry in lockstep.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prospect_rag.config import RetryConfig


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a flaky call and how long to wait in between."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter and delay:
            delay *= 1.0 + random.uniform(-self.jitter, self.jitter)
        return max(delay, 0.0)
