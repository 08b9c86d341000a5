"""Recording capture contract used by the session controller.

A recorder exposes one awaitable ``capture`` that resolves to an
`AudioArtifact` or raises `CaptureError`. ``stop`` ends an in-progress
capture early and is idempotent: stopping an idle recorder is a no-op.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from voice_collect.domain.errors import CaptureError
from voice_collect.domain.models import AudioArtifact


class RecordingCapture(ABC):
    """Source of audio artifacts"""

    @abstractmethod
    async def capture(self, max_duration: float) -> AudioArtifact:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...


class UploadedCapture(RecordingCapture):
    """Capture backed by audio the browser already recorded and uploaded.

    The HTTP session API receives finished recordings, so capturing simply
    hands back the uploaded artifact once.
    """

    def __init__(self, artifact: AudioArtifact | None) -> None:
        self._artifact = artifact
        self._stopped = False

    async def capture(self, max_duration: float) -> AudioArtifact:
        if self._artifact is None or not self._artifact.data:
            raise CaptureError("No audio was received from the recorder")
        artifact, self._artifact = self._artifact, None
        return artifact

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True


__all__ = ["RecordingCapture", "UploadedCapture"]
