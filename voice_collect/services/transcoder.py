"""ffmpeg-backed conversion of browser recordings into a collectable format."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass

from fastapi.concurrency import run_in_threadpool

from voice_collect.config.settings import TranscodeConfig
from voice_collect.domain.errors import TranscodeError
from voice_collect.telemetry import observe_transcode

logger = logging.getLogger(__name__)

_EXTENSION_PATTERN = re.compile(r"\.[^.]+$")


@dataclass(frozen=True)
class TranscodedAudio:
    data: bytes
    filename: str
    content_type: str = "audio/mpeg"


def mp3_filename(original: str) -> str:
    """``recording_x.webm`` -> ``recording_x.mp3``."""

    if _EXTENSION_PATTERN.search(original):
        return _EXTENSION_PATTERN.sub(".mp3", original)
    return f"{original}.mp3"


class Transcoder:
    """Convert arbitrary audio bytes to mono MP3 with a fixed rate and bitrate."""

    def __init__(self, config: TranscodeConfig) -> None:
        self._config = config

    async def to_mp3(self, audio_bytes: bytes, filename: str) -> TranscodedAudio:
        """Run the conversion in a worker thread so the event loop stays responsive."""

        if not audio_bytes:
            raise TranscodeError("Audio payload for conversion was empty.")

        try:
            data = await run_in_threadpool(self._to_mp3_sync, audio_bytes)
        except TranscodeError:
            observe_transcode("error")
            raise
        observe_transcode("success")
        return TranscodedAudio(data=data, filename=mp3_filename(filename))

    def _command(self, input_path: str) -> list[str]:
        return [
            self._config.ffmpeg_binary,
            "-y",
            "-i", input_path,
            "-vn",
            "-acodec", "libmp3lame",
            "-ac", str(self._config.channels),
            "-ar", str(self._config.sample_rate),
            "-b:a", self._config.bitrate,
            "-f", "mp3",
            "pipe:1",
        ]

    def _to_mp3_sync(self, audio_bytes: bytes) -> bytes:
        """Synchronous ffmpeg conversion using a temporary file to support seeking."""

        with tempfile.NamedTemporaryFile(delete=False, suffix=".tmp") as tmp_file:
            tmp_file.write(audio_bytes)
            tmp_path = tmp_file.name

        logger.info("Converting audio to MP3, input size %d bytes", len(audio_bytes))
        try:
            process = subprocess.run(
                self._command(tmp_path),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
        except FileNotFoundError as exc:
            raise TranscodeError(f"ffmpeg binary not found: {self._config.ffmpeg_binary}") from exc
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            logger.error("ffmpeg failed. stderr: %s", error_msg)
            raise TranscodeError(f"ffmpeg failed to convert audio to MP3: {error_msg.strip()[-300:]}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        if not process.stdout:
            logger.warning(
                "ffmpeg produced empty output. stderr: %s",
                process.stderr.decode("utf-8", errors="replace"),
            )
            raise TranscodeError("Output file was not created")

        logger.info("Conversion complete, output size %d bytes", len(process.stdout))
        return process.stdout


__all__ = ["TranscodedAudio", "Transcoder", "mp3_filename"]
