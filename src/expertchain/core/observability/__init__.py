from .trace import STATUS_ERROR, STATUS_OK, RecordingTracer, Span, SpanHandle, Trace, TraceHandle, TracingSink

__all__ = [
    "STATUS_ERROR",
    "STATUS_OK",
    "RecordingTracer",
    "Span",
    "SpanHandle",
    "Trace",
    "TraceHandle",
    "TracingSink",
]
