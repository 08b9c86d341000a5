"""Domain types and errors for the recording session and upload path."""

from .errors import (
    CaptureError,
    FatalConfigError,
    InvalidTransitionError,
    ProxyRequestError,
    RemoteRejectedError,
    RemoteServerError,
    RemoteUnavailableError,
    SkipNotAllowedError,
    TakeValidationError,
    TranscodeError,
    TransportError,
    UploadError,
    UploadTimeoutError,
    VoiceCollectError,
)
from .models import (
    AcceptedLocally,
    AudioArtifact,
    CompletedTake,
    Delivered,
    Failed,
    Session,
    SkippedPhrase,
    Take,
    TakeStatus,
    UploadMetadata,
    UploadOutcome,
)

__all__ = [
    "AcceptedLocally",
    "AudioArtifact",
    "CaptureError",
    "CompletedTake",
    "Delivered",
    "Failed",
    "FatalConfigError",
    "InvalidTransitionError",
    "ProxyRequestError",
    "RemoteRejectedError",
    "RemoteServerError",
    "RemoteUnavailableError",
    "Session",
    "SkipNotAllowedError",
    "SkippedPhrase",
    "Take",
    "TakeStatus",
    "TakeValidationError",
    "TranscodeError",
    "TransportError",
    "UploadError",
    "UploadMetadata",
    "UploadOutcome",
    "UploadTimeoutError",
    "VoiceCollectError",
]
