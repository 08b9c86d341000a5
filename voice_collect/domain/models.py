"""Domain types for recording sessions, takes and upload results.

Persisted shapes (`Session` and its progress entries, `UploadMetadata`) are
pydantic models so that snapshots and labels serialize with the camelCase keys
the browser client and the collection service already use. Transient values
that never leave the process are plain dataclasses.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from voice_collect.domain.errors import UploadError


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""

    return int(time.time() * 1000)


def generate_session_id(timestamp_ms: int | None = None) -> str:
    stamp = timestamp_ms if timestamp_ms is not None else now_ms()
    return f"session_{stamp}_{uuid4().hex[:9]}"


class CompletedTake(BaseModel):
    """A phrase that was recorded and submitted."""

    phrase_index: int = Field(alias="phraseIndex", ge=0)
    phrase_text: str = Field(alias="phraseText")
    timestamp: int
    duration: float = Field(ge=0)
    uploaded: bool = True

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SkippedPhrase(BaseModel):
    """A phrase the participant chose not to record."""

    phrase_index: int = Field(alias="phraseIndex", ge=0)
    phrase_text: str = Field(alias="phraseText")
    timestamp: int

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Session(BaseModel):
    """Resumable progress of one participant through the phrase deck."""

    session_id: str = Field(alias="sessionId")
    phrase_order: list[int] = Field(default_factory=list, alias="phraseOrder")
    current_index: int = Field(default=0, alias="currentIndex", ge=0)
    completed_takes: list[CompletedTake] = Field(default_factory=list, alias="completedTakes")
    skipped_phrases: list[SkippedPhrase] = Field(default_factory=list, alias="skippedPhrases")
    started_at: int = Field(default_factory=now_ms, alias="startedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def new(cls, phrase_order: list[int], *, started_at: int | None = None) -> "Session":
        started = started_at if started_at is not None else now_ms()
        return cls(
            session_id=generate_session_id(started),
            phrase_order=list(phrase_order),
            started_at=started,
        )

    @property
    def is_consistent(self) -> bool:
        """Cursor equals the number of phrases already handled."""

        return self.current_index == len(self.completed_takes) + len(self.skipped_phrases)

    def to_snapshot(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


@dataclass(frozen=True)
class AudioArtifact:
    """Audio produced by a recorder: raw bytes plus declared format and length."""

    data: bytes
    mime_type: str
    duration_seconds: float


class TakeStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    DISCARDED = "discarded"
    SUBMITTED = "submitted"


@dataclass
class Take:
    """One recording attempt, owned by the session controller until submitted or discarded."""

    artifact: AudioArtifact
    phrase_index: int
    phrase_text: str
    captured_at: int
    status: TakeStatus = TakeStatus.PENDING_REVIEW

    @property
    def duration(self) -> float:
        return self.artifact.duration_seconds


class UploadMetadata(BaseModel):
    """Label sent alongside the audio part of an upload."""

    session_id: str = Field(alias="sessionId")
    phrase_id: int = Field(alias="phraseId")
    phrase_text: str = Field(alias="phraseText")
    timestamp: int
    duration: float
    audio_format: str = Field(alias="audioFormat")
    sample_rate: int = Field(alias="sampleRate")
    project_id: str = Field(alias="projectId")
    app_version: str = Field(alias="appVersion")
    custom_fields: dict[str, Any] = Field(default_factory=dict, exclude=True)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_label(self) -> dict[str, Any]:
        """Flat label dict; custom fields sit next to the standard keys."""

        label = self.model_dump(by_alias=True, mode="json")
        label.update(self.custom_fields)
        return label


@dataclass(frozen=True)
class Delivered:
    """The remote collection service stored the take."""

    remote_status: int
    remote_body: Any = None

    kind: ClassVar[str] = "delivered"
    is_success: ClassVar[bool] = True


@dataclass(frozen=True)
class AcceptedLocally:
    """The remote service was unreachable but the take was kept on the proxy host."""

    reason: str
    local_file: Optional[str] = None

    kind: ClassVar[str] = "accepted_locally"
    is_success: ClassVar[bool] = True


@dataclass(frozen=True)
class Failed:
    """Delivery failed; the caller still owns the take."""

    error: UploadError
    attempts: int = field(default=1, compare=False)

    kind: ClassVar[str] = "failed"
    is_success: ClassVar[bool] = False


UploadOutcome = Union[Delivered, AcceptedLocally, Failed]


__all__ = [
    "AcceptedLocally",
    "AudioArtifact",
    "CompletedTake",
    "Delivered",
    "Failed",
    "Session",
    "SkippedPhrase",
    "Take",
    "TakeStatus",
    "UploadMetadata",
    "UploadOutcome",
    "generate_session_id",
    "now_ms",
]
