from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Mapping, Protocol

logger = logging.getLogger("expertchain.cache")


class ResultCache(Protocol):
    def get(self, key: str) -> dict[str, Any] | None: ...

    def set(self, key: str, value: dict[str, Any], ttl_s: int | None = None) -> None: ...

    def invalidate(self, expert_name: str) -> int: ...


def make_cache_key(expert_name: str, input: Mapping[str, Any], parameters: Mapping[str, Any] | None = None) -> str:
    """``<expert_name>:<sha256>`` so entries can be dropped per expert."""
    input_str = json.dumps(dict(input), sort_keys=True, default=str)
    parameters_str = json.dumps(dict(parameters), sort_keys=True, default=str) if parameters else ""
    digest = hashlib.sha256(f"{expert_name}:{input_str}:{parameters_str}".encode("utf-8")).hexdigest()
    return f"{expert_name}:{digest}"


class TTLCache:
    def __init__(self, default_ttl_s: int, max_size: int = 1000) -> None:
        self.default_ttl_s = max(1, int(default_ttl_s))
        self.max_size = max(1, int(max_size))
        self._data: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        now = time.monotonic()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._data.pop(key, None)
                return None
            return value

    def set(self, key: str, value: Any, ttl_s: int | None = None) -> None:
        ttl_value = self.default_ttl_s if ttl_s is None else max(1, int(ttl_s))
        expires_at = time.monotonic() + ttl_value
        with self._lock:
            self._data.pop(key, None)
            while len(self._data) >= self.max_size:
                evicted, _ = self._data.popitem(last=False)
                logger.debug("cache_evicted", extra={"extra_fields": {"key": evicted}})
            self._data[key] = (expires_at, value)

    def invalidate(self, expert_name: str) -> int:
        prefix = f"{expert_name}:"
        with self._lock:
            stale = [key for key in self._data if key.startswith(prefix)]
            for key in stale:
                del self._data[key]
        if stale:
            logger.info("cache_invalidated", extra={"extra_fields": {"expert": expert_name, "entries": len(stale)}})
        return len(stale)

    def __len__(self) -> int:
        return len(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
