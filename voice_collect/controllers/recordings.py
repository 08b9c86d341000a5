"""Local recording collection endpoints used by the development server."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from voice_collect.controllers.dependencies import ArchiveDep, ProxyDep
from voice_collect.services.storage import STATUS_LOCAL, StorageError
from voice_collect.views import (
    RecordingListResponse,
    RecordingSavedResponse,
    RecordingsDeletedResponse,
    RecordingStatsResponse,
    ResubmitResponse,
)

router = APIRouter(prefix="/api", tags=["recordings"])

logger = logging.getLogger(__name__)

_AUDIO_FILE_UPLOAD = File(None)
_METADATA_FORM = Form(None)


@router.post("/recordings", response_model=RecordingSavedResponse, response_model_by_alias=True)
async def save_recording(
    archive: ArchiveDep,
    audio: Optional[UploadFile] = _AUDIO_FILE_UPLOAD,
    metadata: Optional[str] = _METADATA_FORM,
) -> RecordingSavedResponse:
    """Keep an uploaded recording and its metadata on this host."""

    if audio is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No audio file provided")
    try:
        parsed = json.loads(metadata or "")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid metadata format") from None
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid metadata format")

    data = await audio.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty audio file")
    try:
        record = await archive.store(
            data,
            filename=audio.filename or "recording.webm",
            content_type=audio.content_type or "application/octet-stream",
            label=json.dumps(parsed),
            status=STATUS_LOCAL,
        )
    except StorageError as exc:
        logger.error("Error processing recording: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    logger.info(
        "New recording session=%s phrase=%s duration=%s",
        parsed.get("sessionId"),
        parsed.get("phraseText"),
        parsed.get("duration"),
    )
    return RecordingSavedResponse(
        recording_id=record.recording_id,
        data={
            "filename": record.filename,
            "size": record.file_size,
            "duration": parsed.get("duration"),
            "timestamp": record.uploaded_at,
        },
    )


@router.get("/recordings", response_model=RecordingListResponse)
async def list_recordings(archive: ArchiveDep) -> RecordingListResponse:
    records = await archive.list_recordings()
    return RecordingListResponse(count=len(records), recordings=[record.to_dict() for record in records])


@router.get("/stats", response_model=RecordingStatsResponse, response_model_by_alias=True)
async def recording_stats(archive: ArchiveDep) -> RecordingStatsResponse:
    return RecordingStatsResponse.model_validate(await archive.stats())


@router.delete("/recordings", response_model=RecordingsDeletedResponse)
async def delete_recordings(archive: ArchiveDep) -> RecordingsDeletedResponse:
    try:
        deleted = await archive.delete_all()
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    logger.info("Deleted %d archived files", deleted)
    return RecordingsDeletedResponse(deleted=deleted)


@router.post("/recordings/resubmit", response_model=ResubmitResponse, response_model_by_alias=True)
async def resubmit_pending(proxy: ProxyDep) -> ResubmitResponse:
    """Replay takes that were accepted locally while the collection service was down."""

    report = await proxy.resubmit_pending()
    return ResubmitResponse(
        attempted=report.attempted,
        delivered=report.delivered,
        still_pending=report.still_pending,
        failed=report.failed,
    )
