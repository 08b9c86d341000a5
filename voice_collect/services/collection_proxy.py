"""Server-side hop between the browser and the remote collection service.

`CollectionProxy.forward` converts the take to a format the remote service
accepts (when needed), posts it to ``/collect`` with its own timeout and maps
the answer to an `UploadOutcome`:

* 2xx                      -> `Delivered`
* timeout, abort, connection failure, 502/503/504
                           -> `AcceptedLocally` (the take is archived on this
                              host), or `Failed(RemoteUnavailableError)` when
                              degradation is switched off
* other 4xx / 5xx          -> `Failed` carrying the remote status
* conversion failure       -> `Failed(TranscodeError)`

Malformed requests (no file, empty body, oversize file) raise
`ProxyRequestError` instead; they are caller bugs and are never degraded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

import httpx

from voice_collect.config.settings import ProxyConfig
from voice_collect.domain.errors import (
    ProxyRequestError,
    RemoteRejectedError,
    RemoteServerError,
    RemoteUnavailableError,
    TranscodeError,
    UploadError,
)
from voice_collect.domain.models import AcceptedLocally, Delivered, Failed, UploadOutcome
from voice_collect.services.storage import (
    STATUS_DELIVERED,
    STATUS_PENDING,
    RecordingArchive,
    StorageError,
)
from voice_collect.services.transcoder import Transcoder
from voice_collect.services.upload_pipeline import FILE_FIELD, LABEL_FIELD, extension_for
from voice_collect.telemetry import observe_proxy_outcome

logger = logging.getLogger(__name__)

GATEWAY_FAILURE_STATUSES = frozenset({502, 503, 504})

_ACCEPTED_MIME_TYPES = {
    "mp3": {"audio/mpeg", "audio/mp3"},
    "wav": {"audio/wav", "audio/x-wav", "audio/wave"},
    "flac": {"audio/flac", "audio/x-flac"},
}


@dataclass(frozen=True)
class ResubmitReport:
    """Summary of a pass over the pending archive."""

    attempted: int = 0
    delivered: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def still_pending(self) -> int:
        return self.attempted - self.delivered


def _body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"status": "error", "message": response.text}


class CollectionProxy:
    """Forward takes to the remote collection service, degrading when it is down."""

    def __init__(
        self,
        config: ProxyConfig,
        *,
        transcoder: Transcoder,
        archive: RecordingArchive | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transcoder = transcoder
        self._archive = archive
        self._transport = transport

    @property
    def timeout(self) -> float:
        return self._config.timeout_ms / 1000

    def is_accepted_format(self, filename: str | None, content_type: str | None) -> bool:
        """True when the extension or declared mime already suits the remote service."""

        extension = PurePath(filename or "").suffix.lower().lstrip(".")
        if extension in self._config.accepted_formats:
            return True
        mime = (content_type or "").split(";", 1)[0].strip().lower()
        return any(
            mime in _ACCEPTED_MIME_TYPES.get(fmt, set())
            for fmt in self._config.accepted_formats
        )

    async def forward(
        self,
        raw_bytes: bytes,
        content_type: str | None,
        label: str | None,
        *,
        filename: str | None = None,
        archive: bool = True,
    ) -> UploadOutcome:
        """Deliver one take to the remote service and classify the result."""

        if not raw_bytes:
            raise ProxyRequestError("Empty request body")
        if len(raw_bytes) > self._config.max_upload_bytes:
            raise ProxyRequestError(
                f"File exceeds the {self._config.max_upload_bytes} byte limit",
                status_code=413,
            )

        mime_type = content_type or "application/octet-stream"
        name = filename or f"recording.{extension_for(mime_type)}"
        data = raw_bytes
        label_text = label or ""

        logger.info(
            "Proxying file=%s mime=%s size=%.2f KB label=%s",
            name,
            mime_type,
            len(raw_bytes) / 1024,
            label_text,
        )

        if not self.is_accepted_format(name, mime_type):
            logger.info("Format not accepted by the collection service, converting to MP3")
            try:
                converted = await self._transcoder.to_mp3(raw_bytes, name)
            except TranscodeError as exc:
                logger.error("Conversion failed for %s: %s", name, exc)
                observe_proxy_outcome("transcode_failed")
                return Failed(TranscodeError(f"Audio conversion failed: {exc}"))
            data, name, mime_type = converted.data, converted.filename, converted.content_type
            logger.info("Converted to %s size=%.2f KB", name, len(data) / 1024)

        try:
            response = await self._post(data, name, mime_type, label_text)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            reason = f"Collection service timed out after {self.timeout:g} seconds"
            return await self._degrade(reason, 504, data, name, mime_type, label_text, archive)
        except httpx.RequestError as exc:
            reason = f"Collection service unreachable: {exc.__class__.__name__}"
            return await self._degrade(reason, 502, data, name, mime_type, label_text, archive)

        status = response.status_code
        body = _body(response)
        logger.info("Collection service response status=%d body=%s", status, str(body)[:200])

        if response.is_success:
            observe_proxy_outcome(Delivered.kind)
            return Delivered(remote_status=status, remote_body=body)
        if status in GATEWAY_FAILURE_STATUSES:
            reason = f"Collection service unavailable (HTTP {status})"
            return await self._degrade(reason, status, data, name, mime_type, label_text, archive)

        observe_proxy_outcome("remote_error")
        if 400 <= status < 500:
            return Failed(RemoteRejectedError(status, body))
        return Failed(RemoteServerError(status, body))

    async def _post(self, data: bytes, filename: str, mime_type: str, label: str) -> httpx.Response:
        async with httpx.AsyncClient(transport=self._transport) as client:
            request = client.post(
                self._config.target_url,
                files={FILE_FIELD: (filename, data, mime_type)},
                data={LABEL_FIELD: label},
                timeout=self.timeout,
            )
            return await asyncio.wait_for(request, timeout=self.timeout)

    async def _degrade(
        self,
        reason: str,
        status_code: int,
        data: bytes,
        filename: str,
        mime_type: str,
        label: str,
        archive: bool,
    ) -> UploadOutcome:
        """Keep the take on this host and report success, unless degradation is disabled."""

        if not self._config.degrade_on_unavailable:
            logger.error("%s; degradation disabled", reason)
            observe_proxy_outcome("unavailable")
            return Failed(RemoteUnavailableError(reason, status_code=status_code))

        local_file = None
        if archive and self._archive is not None:
            try:
                record = await self._archive.store(
                    data,
                    filename=filename,
                    content_type=mime_type,
                    label=label,
                    status=STATUS_PENDING,
                    reason=reason,
                )
            except StorageError as exc:
                logger.error("%s and the recording could not be kept locally: %s", reason, exc)
                observe_proxy_outcome("archive_failed")
                return Failed(UploadError(f"Recording could not be saved: {exc}"))
            local_file = record.filename

        logger.warning("%s; recording accepted locally file=%s", reason, local_file or filename)
        observe_proxy_outcome(AcceptedLocally.kind)
        return AcceptedLocally(reason=reason, local_file=local_file)

    async def resubmit_pending(self) -> ResubmitReport:
        """Replay archived pending takes; delivered ones are marked as such."""

        if self._archive is None:
            return ResubmitReport()

        pending = await self._archive.pending()
        delivered = 0
        failed: list[str] = []
        for record in pending:
            try:
                data = await self._archive.read_audio(record)
                outcome = await self.forward(
                    data,
                    record.content_type,
                    record.label,
                    filename=record.original_filename,
                    archive=False,
                )
            except (StorageError, ProxyRequestError) as exc:
                logger.error("Cannot resubmit %s: %s", record.recording_id, exc)
                failed.append(record.recording_id)
                continue

            if isinstance(outcome, Delivered):
                try:
                    await self._archive.mark(record, STATUS_DELIVERED)
                except StorageError as exc:
                    logger.error("Delivered %s but could not update its status: %s", record.recording_id, exc)
                delivered += 1
            elif isinstance(outcome, Failed):
                failed.append(record.recording_id)

        logger.info("Resubmitted %d pending recordings, %d delivered", len(pending), delivered)
        return ResubmitReport(attempted=len(pending), delivered=delivered, failed=failed)


__all__ = ["CollectionProxy", "GATEWAY_FAILURE_STATUSES", "ResubmitReport"]
