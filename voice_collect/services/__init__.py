"""Service layer: session flow, upload delivery and the collection proxy."""

from .capture import RecordingCapture, UploadedCapture
from .collection_proxy import CollectionProxy, ResubmitReport
from .phrase_deck import SESSION_COMPLETE, Phrase, PhraseDeck, load_phrases, shuffle
from .session_controller import (
    Phase,
    Screen,
    SessionController,
    SessionSummary,
    SubmitResult,
)
from .session_registry import SessionRegistry
from .session_store import (
    MemorySnapshotBackend,
    MilestoneTracker,
    SessionStore,
    SnapshotBackend,
    SqlSnapshotBackend,
)
from .storage import ArchivedRecording, RecordingArchive, StorageError
from .transcoder import Transcoder
from .upload_pipeline import UploadOptions, UploadPipeline

__all__ = [
    "ArchivedRecording",
    "CollectionProxy",
    "MemorySnapshotBackend",
    "MilestoneTracker",
    "Phase",
    "Phrase",
    "PhraseDeck",
    "RecordingArchive",
    "RecordingCapture",
    "ResubmitReport",
    "SESSION_COMPLETE",
    "Screen",
    "SessionController",
    "SessionRegistry",
    "SessionStore",
    "SessionSummary",
    "SnapshotBackend",
    "SqlSnapshotBackend",
    "StorageError",
    "SubmitResult",
    "Transcoder",
    "UploadOptions",
    "UploadPipeline",
    "UploadedCapture",
    "load_phrases",
    "shuffle",
]
