"""Local archive of recordings kept on the proxy host.

Each recording is written as an audio file plus a JSON sidecar describing it.
The proxy archives every take it accepts while the remote collection service
is unreachable (status ``pending``) so it can be resubmitted later; the
development collection endpoints archive directly (status ``local``). When an
S3 bucket is configured the files are mirrored there as well.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional
from uuid import uuid4

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from voice_collect.config.settings import StorageConfig
from voice_collect.services.aws import create_boto3_client

logger = logging.getLogger(__name__)

STATUS_LOCAL = "local"
STATUS_PENDING = "pending"
STATUS_DELIVERED = "delivered"


class StorageError(RuntimeError):
    """Raised when a recording cannot be persisted on the proxy host."""


@dataclass(frozen=True)
class ArchivedRecording:
    """Sidecar contents for one archived recording."""

    recording_id: str
    filename: str
    original_filename: str
    content_type: str
    file_size: int
    file_path: str
    uploaded_at: str
    status: str
    label: str
    metadata: Mapping[str, Any]
    reason: Optional[str] = None

    @property
    def duration(self) -> float:
        value = self.metadata.get("duration")
        try:
            return float(value) if value is not None else 0.0
        except (TypeError, ValueError):
            return 0.0

    def to_dict(self) -> dict[str, Any]:
        record = dict(self.metadata)
        record.update(
            recordingId=self.recording_id,
            filename=self.filename,
            originalFilename=self.original_filename,
            contentType=self.content_type,
            fileSize=self.file_size,
            filePath=self.file_path,
            uploadedAt=self.uploaded_at,
            status=self.status,
            label=self.label,
        )
        if self.reason:
            record["reason"] = self.reason
        return record

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ArchivedRecording":
        reserved = {
            "recordingId",
            "filename",
            "originalFilename",
            "contentType",
            "fileSize",
            "filePath",
            "uploadedAt",
            "status",
            "label",
            "reason",
        }
        return cls(
            recording_id=str(data["recordingId"]),
            filename=str(data["filename"]),
            original_filename=str(data.get("originalFilename") or data["filename"]),
            content_type=str(data.get("contentType") or "application/octet-stream"),
            file_size=int(data.get("fileSize") or 0),
            file_path=str(data.get("filePath") or ""),
            uploaded_at=str(data.get("uploadedAt") or ""),
            status=str(data.get("status") or STATUS_LOCAL),
            label=str(data.get("label") or ""),
            metadata={k: v for k, v in data.items() if k not in reserved},
            reason=data.get("reason"),
        )


def parse_label(label: str | None) -> dict[str, Any]:
    """Best-effort decoding of a JSON label; non-JSON labels are kept verbatim."""

    if not label:
        return {}
    try:
        decoded = json.loads(label)
    except (TypeError, ValueError):
        return {"labelText": label}
    return dict(decoded) if isinstance(decoded, Mapping) else {"labelText": label}


def _suffix(filename: str) -> str:
    suffix = Path(filename).suffix
    return suffix if suffix else ".webm"


class RecordingArchive:
    """Write, enumerate and summarize archived recordings."""

    def __init__(self, config: StorageConfig, *, s3_client: Any | None = None) -> None:
        self._root = Path(config.uploads_dir)
        self._bucket = config.s3_bucket
        self._prefix = config.s3_prefix.strip("/")
        self._s3_client = s3_client
        if self._bucket and self._s3_client is None:
            self._s3_client = create_boto3_client("s3", config)

    @property
    def root(self) -> Path:
        return self._root

    def _sidecar_path(self, recording_id: str) -> Path:
        return self._root / f"{recording_id}.json"

    async def store(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        label: str,
        status: str = STATUS_LOCAL,
        reason: str | None = None,
    ) -> ArchivedRecording:
        """Persist the audio and its sidecar; raises `StorageError` on failure."""

        if not data:
            raise StorageError("Audio payload for archive was empty.")

        recording_id = f"rec_{int(time.time() * 1000)}_{uuid4().hex[:9]}"
        stored_name = f"{recording_id}{_suffix(filename)}"
        audio_path = self._root / stored_name
        record = ArchivedRecording(
            recording_id=recording_id,
            filename=stored_name,
            original_filename=filename,
            content_type=content_type,
            file_size=len(data),
            file_path=str(audio_path),
            uploaded_at=datetime.now(timezone.utc).isoformat(),
            status=status,
            label=label,
            metadata=parse_label(label),
            reason=reason,
        )

        try:
            await run_in_threadpool(self._write, audio_path, data, record)
        except OSError as exc:
            raise StorageError(f"Failed to archive recording: {exc}") from exc

        logger.info(
            "Archived recording id=%s file=%s size=%d status=%s",
            recording_id,
            filename,
            len(data),
            status,
        )
        await self._mirror(record, data)
        return record

    def _write(self, audio_path: Path, data: bytes, record: ArchivedRecording) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        audio_path.write_bytes(data)
        self._sidecar_path(record.recording_id).write_text(
            json.dumps(record.to_dict(), indent=2),
            encoding="utf-8",
        )

    async def _mirror(self, record: ArchivedRecording, data: bytes) -> None:
        """Copy the recording to S3; the local copy stays authoritative."""

        if not self._bucket or self._s3_client is None:
            return

        base_key = f"{self._prefix}/{record.recording_id}" if self._prefix else record.recording_id
        try:
            await run_in_threadpool(
                self._s3_client.put_object,
                Bucket=self._bucket,
                Key=f"{base_key}{_suffix(record.filename)}",
                Body=data,
                ContentType=record.content_type,
            )
            await run_in_threadpool(
                self._s3_client.put_object,
                Bucket=self._bucket,
                Key=f"{base_key}.json",
                Body=json.dumps(record.to_dict()).encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("S3 mirror failed for %s: %s", record.recording_id, exc)

    def _load_all(self) -> list[ArchivedRecording]:
        if not self._root.exists():
            return []
        records: list[ArchivedRecording] = []
        for sidecar in self._root.glob("rec_*.json"):
            try:
                data = json.loads(sidecar.read_text(encoding="utf-8"))
                records.append(ArchivedRecording.from_dict(data))
            except (OSError, ValueError, KeyError) as exc:
                logger.warning("Skipping unreadable sidecar %s: %s", sidecar, exc)
        records.sort(key=lambda item: item.uploaded_at, reverse=True)
        return records

    async def list_recordings(self) -> list[ArchivedRecording]:
        """All archived recordings, most recent first."""

        return await run_in_threadpool(self._load_all)

    async def pending(self) -> list[ArchivedRecording]:
        records = await self.list_recordings()
        return [record for record in reversed(records) if record.status == STATUS_PENDING]

    async def read_audio(self, record: ArchivedRecording) -> bytes:
        try:
            return await run_in_threadpool((self._root / record.filename).read_bytes)
        except OSError as exc:
            raise StorageError(f"Failed to read archived audio {record.filename}: {exc}") from exc

    async def mark(self, record: ArchivedRecording, status: str) -> ArchivedRecording:
        """Rewrite the sidecar with a new status."""

        updated = ArchivedRecording.from_dict({**record.to_dict(), "status": status})
        try:
            await run_in_threadpool(
                self._sidecar_path(record.recording_id).write_text,
                json.dumps(updated.to_dict(), indent=2),
                "utf-8",
            )
        except OSError as exc:
            raise StorageError(f"Failed to update sidecar for {record.recording_id}: {exc}") from exc
        return updated

    async def stats(self) -> dict[str, Any]:
        records = await self.list_recordings()
        total_duration = sum(record.duration for record in records)
        total_size = sum(record.file_size for record in records)
        sessions = {record.metadata.get("sessionId") for record in records if record.metadata.get("sessionId")}
        phrases = {record.metadata.get("phraseText") for record in records if record.metadata.get("phraseText")}
        count = len(records)
        return {
            "totalRecordings": count,
            "totalDuration": round(total_duration, 2),
            "totalSizeMb": round(total_size / (1024 * 1024), 2),
            "uniqueSessions": len(sessions),
            "uniquePhrases": len(phrases),
            "averageDuration": round(total_duration / count, 2) if count else 0,
            "pending": sum(1 for record in records if record.status == STATUS_PENDING),
        }

    def _delete_all(self) -> int:
        if not self._root.exists():
            return 0
        deleted = 0
        for path in self._root.iterdir():
            if path.is_file():
                path.unlink()
                deleted += 1
        return deleted

    async def delete_all(self) -> int:
        try:
            return await run_in_threadpool(self._delete_all)
        except OSError as exc:
            raise StorageError(f"Failed to delete recordings: {exc}") from exc


__all__ = [
    "ArchivedRecording",
    "RecordingArchive",
    "STATUS_DELIVERED",
    "STATUS_LOCAL",
    "STATUS_PENDING",
    "StorageError",
    "parse_label",
]
