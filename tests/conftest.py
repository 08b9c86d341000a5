"""Shared fixtures and fakes for the test suite."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Any, Callable

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from voice_collect.config.settings import (  # noqa: E402
    MetadataConfig,
    RecordingConfig,
    SessionConfig,
    StorageConfig,
    UiConfig,
)
from voice_collect.domain.models import AudioArtifact, Delivered  # noqa: E402
from voice_collect.services.phrase_deck import PhraseDeck  # noqa: E402
from voice_collect.services.session_controller import SessionController  # noqa: E402
from voice_collect.services.session_store import (  # noqa: E402
    MemorySnapshotBackend,
    MilestoneTracker,
    SessionStore,
)
from voice_collect.services.storage import RecordingArchive  # noqa: E402
from voice_collect.services.transcoder import TranscodedAudio, mp3_filename  # noqa: E402

WAV_BYTES = b"RIFF$\x00\x00\x00WAVEfmt " + b"\x00" * 32


def make_artifact(duration: float = 1.2, mime_type: str = "audio/wav", data: bytes = WAV_BYTES) -> AudioArtifact:
    return AudioArtifact(data=data, mime_type=mime_type, duration_seconds=duration)


class RecordingTransport:
    """MockTransport wrapper that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], Any]) -> None:
        self.requests: list[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self._handler(request)
        if hasattr(result, "__await__"):
            result = await result
        return result


class FakePipeline:
    """Upload pipeline double returning queued outcomes (``Delivered`` once drained)."""

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[AudioArtifact, Any]] = []

    async def submit(self, artifact, metadata, options=None):
        self.calls.append((artifact, metadata))
        if self.outcomes:
            return self.outcomes.pop(0)
        return Delivered(remote_status=200, remote_body={"status": "success"})


class FakeTranscoder:
    """Stands in for ffmpeg; either converts to fixed MP3 bytes or raises."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[str] = []

    async def to_mp3(self, audio_bytes: bytes, filename: str) -> TranscodedAudio:
        self.calls.append(filename)
        if self.error is not None:
            raise self.error
        return TranscodedAudio(data=b"ID3-mp3-bytes", filename=mp3_filename(filename))


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def backend() -> MemorySnapshotBackend:
    return MemorySnapshotBackend()


@pytest.fixture
def store(backend: MemorySnapshotBackend) -> SessionStore:
    return SessionStore(backend)


@pytest.fixture
def archive(tmp_path: Path) -> RecordingArchive:
    return RecordingArchive(StorageConfig(uploads_dir=str(tmp_path / "uploads"), s3_bucket=None))


@pytest.fixture
def build_controller(backend: MemorySnapshotBackend, store: SessionStore):
    """Factory for controllers sharing the test's snapshot backend."""

    def factory(
        phrases=("alpha", "bravo", "charlie"),
        pipeline: FakePipeline | None = None,
        *,
        allow_skip: bool = True,
        break_after: int = 0,
        thank_you_after: int = 3,
        practice: bool = True,
        key: str = "voice_research_session",
    ) -> SessionController:
        return SessionController(
            PhraseDeck(list(phrases)),
            pipeline or FakePipeline(),
            recording=RecordingConfig(min_duration=0.5, max_duration=15),
            ui=UiConfig(
                allow_skip=allow_skip,
                break_after_recordings=break_after,
                thank_you_after=thank_you_after,
                enable_practice_mode=practice,
            ),
            metadata=MetadataConfig(project_id="test_project", custom_fields={"cohort": "pilot"}),
            session_config=SessionConfig(),
            store=store,
            milestones=MilestoneTracker(backend, prefix="voice_research_", threshold=thank_you_after),
            snapshot_key=key,
        )

    return factory
