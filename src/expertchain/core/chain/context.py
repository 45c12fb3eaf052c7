from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping
from uuid import uuid4


class SharedContext:
    """Request-scoped container threaded through every expert call.

    Identity fields are fixed at construction. ``state`` is a plain dict any
    expert may read or write; parallel branches share it without locking, so
    concurrent writes to one key resolve as last-write-wins.
    """

    def __init__(
        self,
        original_input: Mapping[str, Any],
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> None:
        self._original_input = MappingProxyType(dict(original_input))
        self._user_id = user_id or f"user-{uuid4()}"
        self._session_id = session_id or f"session-{uuid4()}"
        self._trace_id = str(uuid4())
        self.state: dict[str, Any] = {}

    @property
    def original_input(self) -> Mapping[str, Any]:
        return self._original_input

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def trace_id(self) -> str:
        return self._trace_id

    def get(self, key: str, default: Any = None) -> Any:
        return self.state.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.state[key] = value

    def has(self, key: str) -> bool:
        return key in self.state

    def delete(self, key: str) -> bool:
        return self.state.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        self.state.clear()


_MISSING = object()
