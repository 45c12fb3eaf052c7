from __future__ import annotations

import logging
import threading

from expertchain.core.chain.errors import CircuitOpenError

from .breaker import CircuitBreaker

logger = logging.getLogger("expertchain.breaker")


class BreakerManager:
    """Keeps one circuit breaker per expert name for the life of the process."""

    def __init__(
        self,
        failure_threshold: int = 5,
        open_seconds: float = 30.0,
        half_open_max_trials: int = 1,
        enabled: bool = True,
    ) -> None:
        self.enabled = enabled
        self.failure_threshold = max(1, failure_threshold)
        self.open_seconds = max(0.0, open_seconds)
        self.half_open_max_trials = max(1, half_open_max_trials)
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, expert_name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(expert_name)
            if breaker is None:
                breaker = CircuitBreaker(
                    expert_name=expert_name,
                    failure_threshold=self.failure_threshold,
                    open_seconds=self.open_seconds,
                    half_open_max_trials=self.half_open_max_trials,
                )
                self._breakers[expert_name] = breaker
            return breaker

    def check(self, expert_name: str) -> None:
        if not self.enabled:
            return
        breaker = self.get(expert_name)
        if not breaker.allow_request():
            raise CircuitOpenError(expert_name, breaker.last_error)

    def record_success(self, expert_name: str) -> None:
        if not self.enabled:
            return
        transition = self.get(expert_name).record_success()
        if transition is not None:
            self._log_transition(expert_name, transition, "request succeeded")

    def record_failure(self, expert_name: str, error: BaseException) -> None:
        if not self.enabled:
            return
        transition = self.get(expert_name).record_failure(str(error))
        if transition is not None:
            self._log_transition(expert_name, transition, str(error))

    def release(self, expert_name: str) -> None:
        if not self.enabled:
            return
        self.get(expert_name).release_trial()

    def reset(self, expert_name: str) -> None:
        with self._lock:
            removed = self._breakers.pop(expert_name, None)
        if removed is not None and removed.state != "closed":
            self._log_transition(expert_name, (removed.state, "closed"), "expert re-registered")

    def snapshot(self) -> dict[str, dict[str, object]]:
        with self._lock:
            return {name: breaker.to_dict() for name, breaker in self._breakers.items()}

    def _log_transition(self, expert_name: str, transition: tuple[str, str], reason: str) -> None:
        logger.warning(
            "breaker_transition",
            extra={
                "extra_fields": {
                    "expert": expert_name,
                    "from_state": transition[0],
                    "to_state": transition[1],
                    "reason": reason,
                }
            },
        )
