"""Pydantic schemas used as views in the MVC architecture."""

from .health import HealthResponse
from .proxy import AcceptedLocallyResponse, ResubmitResponse
from .recordings import (
    RecordingListResponse,
    RecordingSavedResponse,
    RecordingsDeletedResponse,
    RecordingStatsResponse,
)
from .sessions import (
    BreakResponse,
    ConsentRequest,
    PendingTakeView,
    PhraseView,
    SessionStateResponse,
    SubmitResponse,
    SummaryView,
)

__all__ = [
    "AcceptedLocallyResponse",
    "BreakResponse",
    "ConsentRequest",
    "HealthResponse",
    "PendingTakeView",
    "PhraseView",
    "RecordingListResponse",
    "RecordingSavedResponse",
    "RecordingStatsResponse",
    "RecordingsDeletedResponse",
    "ResubmitResponse",
    "SessionStateResponse",
    "SubmitResponse",
    "SummaryView",
]
