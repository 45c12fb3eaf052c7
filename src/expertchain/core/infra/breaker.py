from __future__ import annotations

import time
from dataclasses import dataclass

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    expert_name: str
    failure_threshold: int = 5
    open_seconds: float = 30.0
    half_open_max_trials: int = 1
    state: str = CLOSED
    failure_count: int = 0
    open_until: float = 0.0
    last_error: str | None = None
    half_open_trials_used: int = 0

    def allow_request(self, now: float | None = None) -> bool:
        current = time.monotonic() if now is None else now
        if self.state == OPEN:
            if current < self.open_until:
                return False
            self.state = HALF_OPEN
            self.half_open_trials_used = 0
        if self.state == HALF_OPEN:
            if self.half_open_trials_used >= max(1, self.half_open_max_trials):
                return False
            self.half_open_trials_used += 1
        return True

    def release_trial(self) -> None:
        # Cancelled trials are handed back unscored.
        if self.state == HALF_OPEN and self.half_open_trials_used > 0:
            self.half_open_trials_used -= 1

    def record_success(self) -> tuple[str, str] | None:
        previous = self.state
        self.state = CLOSED
        self.failure_count = 0
        self.open_until = 0.0
        self.last_error = None
        self.half_open_trials_used = 0
        return (previous, CLOSED) if previous != CLOSED else None

    def record_failure(self, error_str: str, now: float | None = None) -> tuple[str, str] | None:
        current = time.monotonic() if now is None else now
        previous = self.state
        self.last_error = error_str
        self.failure_count += 1
        if self.state == HALF_OPEN or self.failure_count >= max(1, self.failure_threshold):
            self.state = OPEN
            self.open_until = current + max(0.0, self.open_seconds)
            self.half_open_trials_used = 0
        return (previous, self.state) if previous != self.state else None

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state,
            "failure_count": self.failure_count,
            "last_error": self.last_error,
            "half_open_trials_used": self.half_open_trials_used,
        }
