"""Telemetry helpers and metrics."""

from .metrics import (
    ERROR_COUNTER,
    PROXY_OUTCOMES,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    TRANSCODES,
    UPLOAD_ATTEMPTS,
    UPLOAD_OUTCOMES,
    observe_proxy_outcome,
    observe_request,
    observe_transcode,
    observe_upload_attempt,
    observe_upload_outcome,
)

__all__ = [
    "ERROR_COUNTER",
    "PROXY_OUTCOMES",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "TRANSCODES",
    "UPLOAD_ATTEMPTS",
    "UPLOAD_OUTCOMES",
    "observe_proxy_outcome",
    "observe_request",
    "observe_transcode",
    "observe_upload_attempt",
    "observe_upload_outcome",
]
