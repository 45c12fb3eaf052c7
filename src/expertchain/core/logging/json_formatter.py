from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any

from .context import expert_var, session_id_var, trace_id_var, user_id_var

_RESERVED = frozenset({"ts", "level", "logger", "event", "service", "trace_id", "user_id", "session_id", "expert", "error"})


class JSONFormatter(logging.Formatter):
    """One JSON object per line for chain events.

    Keys, in order: ``ts`` (record time, UTC), ``level``, ``logger``, ``event``
    (the snake_case message), ``service``, the request ids bound with
    ``log_context`` (``trace_id``, ``user_id``, ``session_id``, ``expert``),
    then the record's ``extra_fields``. Extras that collide with those keys
    are written as ``extra_<key>``. Exceptions land under ``error``.
    """

    def __init__(self, service: str = "expertchain") -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "service": self.service,
        }
        for key, var in (
            ("trace_id", trace_id_var),
            ("user_id", user_id_var),
            ("session_id", session_id_var),
            ("expert", expert_var),
        ):
            value = var.get()
            if value is not None:
                payload[key] = value

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            for key, value in extra_fields.items():
                payload[f"extra_{key}" if key in _RESERVED else key] = value

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["error"] = {
                "type": exc_type.__name__,
                "message": str(exc_value) if exc_value else "",
                "stack": "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            }

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
