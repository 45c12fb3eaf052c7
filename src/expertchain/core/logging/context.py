from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)
expert_var: ContextVar[str | None] = ContextVar("expert", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "trace_id": trace_id_var,
    "user_id": user_id_var,
    "session_id": session_id_var,
    "expert": expert_var,
}


def set_context(**kwargs: str | None) -> dict[str, Token[str | None]]:
    tokens: dict[str, Token[str | None]] = {}
    for key, value in kwargs.items():
        var = _CONTEXT_VARS.get(key)
        if var is None:
            continue
        tokens[key] = var.set(value)
    return tokens


def reset_context(tokens: dict[str, Token[str | None]]) -> None:
    for key, token in tokens.items():
        var = _CONTEXT_VARS.get(key)
        if var is not None:
            var.reset(token)


@contextmanager
def log_context(
    trace_id: str | None = None,
    user_id: str | None = None,
    session_id: str | None = None,
    expert: str | None = None,
) -> Iterator[None]:
    # Only bind what was given so nested scopes keep the outer ids.
    values = {"trace_id": trace_id, "user_id": user_id, "session_id": session_id, "expert": expert}
    tokens = set_context(**{key: value for key, value in values.items() if value is not None})
    try:
        yield
    finally:
        reset_context(tokens)


def get_log_context() -> dict[str, str]:
    values = {key: var.get() for key, var in _CONTEXT_VARS.items()}
    return {key: value for key, value in values.items() if value is not None}
