"""Error taxonomy shared by the recording session and the upload path."""

from __future__ import annotations

from typing import Any


class VoiceCollectError(Exception):
    """Base class for all recoverable application errors."""


class CaptureError(VoiceCollectError):
    """The recorder could not produce audio (permission denied, unsupported format)."""


class TakeValidationError(VoiceCollectError):
    """A take was rejected locally before reaching the network."""


class FatalConfigError(VoiceCollectError):
    """Configuration that makes recording behaviour undefined."""


class InvalidTransitionError(VoiceCollectError):
    """The session state machine does not allow the requested action right now."""


class SkipNotAllowedError(InvalidTransitionError):
    """Skipping is disabled by configuration."""


class ProxyRequestError(VoiceCollectError):
    """Malformed request reaching the proxy (caller bug, never degraded)."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadError(VoiceCollectError):
    """Base class for failures delivering a take."""

    retryable = False


class TransportError(UploadError):
    """Network failure or aborted request."""

    retryable = True


class UploadTimeoutError(TransportError):
    """The request was cancelled after exceeding its timeout."""


class RemoteServerError(UploadError):
    """The endpoint answered with a 5xx status."""

    retryable = True

    def __init__(self, status_code: int, body: Any = None) -> None:
        super().__init__(f"HTTP error! status: {status_code}")
        self.status_code = status_code
        self.body = body


class RemoteRejectedError(UploadError):
    """The endpoint answered with a 4xx status; resending the same take cannot help."""

    def __init__(self, status_code: int, body: Any = None) -> None:
        super().__init__(f"Request rejected with status {status_code}")
        self.status_code = status_code
        self.body = body


class RemoteUnavailableError(UploadError):
    """Gateway-level failure or timeout reported by the proxy hop."""

    def __init__(self, message: str, status_code: int = 504) -> None:
        super().__init__(message)
        self.status_code = status_code


class TranscodeError(UploadError):
    """Audio could not be converted to a format the remote service accepts."""


__all__ = [
    "CaptureError",
    "FatalConfigError",
    "InvalidTransitionError",
    "ProxyRequestError",
    "RemoteRejectedError",
    "RemoteServerError",
    "RemoteUnavailableError",
    "SkipNotAllowedError",
    "TakeValidationError",
    "TranscodeError",
    "TransportError",
    "UploadError",
    "UploadTimeoutError",
    "VoiceCollectError",
]
