from __future__ import annotations

from typing import Any


class ChainError(RuntimeError):
    """Base error for everything raised by the chain engine."""

    retryable = True

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context or {})


class ChainConfigurationError(ChainError):
    pass


class ExpertNotFoundError(ChainConfigurationError):
    def __init__(self, expert_name: str) -> None:
        super().__init__(f"Expert '{expert_name}' not found in registry.", {"expert_name": expert_name})
        self.expert_name = expert_name


class ProtectedExpertError(ChainConfigurationError):
    retryable = False

    def __init__(self, expert_name: str) -> None:
        super().__init__(f"Expert '{expert_name}' is built-in and cannot be removed.", {"expert_name": expert_name})
        self.expert_name = expert_name


class InvalidExpertParameters(ChainError, ValueError):
    retryable = False

    def __init__(self, expert_name: str, parameters: dict[str, Any]) -> None:
        super().__init__(
            f"Invalid parameters for expert '{expert_name}': {sorted(parameters)}",
            {"expert_name": expert_name, "parameters": dict(parameters)},
        )
        self.expert_name = expert_name


class CircuitOpenError(ChainError):
    retryable = False

    def __init__(self, expert_name: str, last_error: str | None = None) -> None:
        suffix = f" (last error: {last_error})" if last_error else ""
        super().__init__(f"Circuit for {expert_name} is open{suffix}", {"expert_name": expert_name})
        self.expert_name = expert_name
        self.last_error = last_error


class ExpertTimeoutError(ChainError):
    def __init__(self, expert_name: str, timeout_s: float) -> None:
        super().__init__(f"Expert '{expert_name}' timed out after {timeout_s:g}s", {"expert_name": expert_name})
        self.expert_name = expert_name
        self.timeout_s = timeout_s


class ExpertError(ChainError):
    """Terminal failure of one expert after its retries were exhausted."""

    retryable = False

    def __init__(self, message: str, expert_name: str, attempts: int = 0, cause: BaseException | None = None) -> None:
        super().__init__(
            f"Error in expert '{expert_name}': {message}",
            {"expert_name": expert_name, "attempts": attempts},
        )
        self.expert_name = expert_name
        self.attempts = attempts
        self.reason = message
        self.cause = cause


def is_retryable(error: BaseException) -> bool:
    return bool(getattr(error, "retryable", True))
