from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

logger = logging.getLogger("expertchain.trace")

STATUS_OK = "success"
STATUS_ERROR = "error"


class SpanHandle(Protocol):
    def update(self, status: str, message: str | None = None, metadata: dict[str, Any] | None = None) -> None: ...

    def score(self, name: str, value: float, comment: str | None = None) -> None: ...

    def end(self) -> None: ...


class TraceHandle(Protocol):
    trace_id: str

    def start_span(self, name: str, metadata: dict[str, Any] | None = None) -> SpanHandle: ...

    def update(self, status: str, metadata: dict[str, Any] | None = None) -> None: ...

    def end(self) -> None: ...


class TracingSink(Protocol):
    def start_trace(self, name: str, metadata: dict[str, Any] | None = None) -> TraceHandle: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Span:
    name: str
    trace_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    status: str | None = None
    message: str | None = None
    started_at: str = field(default_factory=_now_iso)
    ended: bool = False
    duration_ms: float | None = None
    scores: list[dict[str, Any]] = field(default_factory=list)
    _start: float = field(default_factory=time.perf_counter, repr=False)

    def update(self, status: str, message: str | None = None, metadata: dict[str, Any] | None = None) -> None:
        self.status = status
        if message is not None:
            self.message = message
        if metadata:
            self.metadata.update(metadata)

    def score(self, name: str, value: float, comment: str | None = None) -> None:
        entry: dict[str, Any] = {"name": name, "value": value}
        if comment is not None:
            entry["comment"] = comment
        self.scores.append(entry)

    def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        self.duration_ms = round((time.perf_counter() - self._start) * 1000, 3)
        logger.debug(
            "span_ended",
            extra={
                "extra_fields": {
                    "span": self.name,
                    "status": self.status,
                    "duration_ms": self.duration_ms,
                }
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "metadata": dict(self.metadata),
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "scores": [dict(item) for item in self.scores],
        }


@dataclass
class Trace:
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)
    trace_id: str = field(default_factory=lambda: str(uuid4()))
    spans: list[Span] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    status: str | None = None
    ended: bool = False

    def start_span(self, name: str, metadata: dict[str, Any] | None = None) -> Span:
        span = Span(name=name, trace_id=self.trace_id, metadata=dict(metadata or {}))
        self.spans.append(span)
        self.emit("SpanStarted", {"span": name})
        return span

    def update(self, status: str, metadata: dict[str, Any] | None = None) -> None:
        self.status = status
        if metadata:
            self.metadata.update(metadata)

    def end(self) -> None:
        self.ended = True
        self.emit("TraceEnded", {"status": self.status, "span_count": len(self.spans)})

    def emit(self, name: str, payload: dict[str, Any]) -> None:
        enriched_payload = dict(payload)
        enriched_payload.setdefault("trace_id", self.trace_id)
        self.events.append({"event": name, "payload": enriched_payload})

    def span_names(self) -> list[str]:
        return [span.name for span in self.spans]


class RecordingTracer:
    """In-process tracing sink that keeps every trace it starts."""

    def __init__(self, max_traces: int = 200) -> None:
        self.max_traces = max(1, max_traces)
        self.traces: list[Trace] = []

    def start_trace(self, name: str, metadata: dict[str, Any] | None = None) -> Trace:
        trace = Trace(name=name, metadata=dict(metadata or {}))
        self.traces.append(trace)
        if len(self.traces) > self.max_traces:
            del self.traces[: len(self.traces) - self.max_traces]
        return trace

    def last(self) -> Trace | None:
        return self.traces[-1] if self.traces else None
