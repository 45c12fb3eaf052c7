from __future__ import annotations

import random
from dataclasses import dataclass

from .errors import is_retryable
from .schemas import RetryOptions


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 0.2
    backoff_multiplier: float = 2.0
    jitter: bool = False
    max_delay_s: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0:
            raise ValueError("base_delay_s must be >= 0")

    @classmethod
    def from_options(cls, options: RetryOptions) -> "RetryPolicy":
        return cls(
            max_attempts=options.max_attempts,
            base_delay_s=options.base_delay_s,
            backoff_multiplier=options.backoff_multiplier,
            jitter=options.jitter,
            max_delay_s=options.max_delay_s,
        )

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """``attempt`` is the 1-based number of the attempt that just failed."""
        return attempt < self.max_attempts and is_retryable(error)

    def delay_for(self, attempt: int, rand: float | None = None) -> float:
        delay = self.base_delay_s * (self.backoff_multiplier ** max(0, attempt - 1))
        if self.max_delay_s is not None:
            delay = min(self.max_delay_s, delay)
        if self.jitter:
            # Full range is [0.5, 1.5) times the nominal delay.
            delay *= 0.5 + (random.random() if rand is None else rand)
        return delay
