"""Client-side delivery of a take to the collection endpoint.

`UploadPipeline.submit` packages the audio and its label into a multipart
request, sends it with a per-attempt timeout and retries transport failures,
timeouts and 5xx answers with a fixed delay. A 4xx answer means the label or
file was rejected and is returned immediately. Every network problem is
converted into an `UploadOutcome`; callers never see raw transport errors.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from voice_collect.config.settings import ApiConfig
from voice_collect.domain.errors import (
    RemoteRejectedError,
    RemoteServerError,
    TransportError,
    UploadError,
    UploadTimeoutError,
)
from voice_collect.domain.models import (
    AcceptedLocally,
    AudioArtifact,
    Delivered,
    Failed,
    UploadMetadata,
    UploadOutcome,
)
from voice_collect.telemetry import observe_upload_attempt, observe_upload_outcome

logger = logging.getLogger(__name__)

FILE_FIELD = "file"
LABEL_FIELD = "label"
DEFAULT_EXTENSION = "webm"

# Checked in order against the declared mime type.
_EXTENSIONS: tuple[tuple[str, str], ...] = (
    ("wav", "wav"),
    ("mp3", "mp3"),
    ("mpeg", "mp3"),
    ("mp4", "mp4"),
    ("flac", "flac"),
)


def extension_for(mime_type: str | None) -> str:
    """Map a declared mime type to a file extension (``webm`` when unrecognized)."""

    lowered = (mime_type or "").lower()
    for marker, extension in _EXTENSIONS:
        if marker in lowered:
            return extension
    return DEFAULT_EXTENSION


def build_filename(metadata: UploadMetadata, mime_type: str | None) -> str:
    return f"recording_{metadata.session_id}_{metadata.phrase_id}.{extension_for(mime_type)}"


@dataclass(frozen=True)
class UploadOptions:
    """Per-submission transport settings; defaults come from `ApiConfig`."""

    endpoint: str
    auth_token: Optional[str] = None
    timeout: float = 30.0
    retry_attempts: int = 3
    retry_delay: float = 2.0

    @classmethod
    def from_config(cls, config: ApiConfig) -> "UploadOptions":
        token = config.auth_token.get_secret_value() if config.auth_token else None
        return cls(
            endpoint=config.endpoint,
            auth_token=token or None,
            timeout=config.timeout_ms / 1000,
            retry_attempts=config.retry_attempts,
            retry_delay=config.retry_delay_ms / 1000,
        )

    def headers(self) -> dict[str, str]:
        if not self.auth_token:
            return {}
        return {"Authorization": f"Bearer {self.auth_token}"}


@dataclass(frozen=True)
class UploadPayload:
    """Multipart body parts for one take."""

    filename: str
    content_type: str
    data: bytes
    label: str

    def files(self) -> dict[str, tuple[str, bytes, str]]:
        return {FILE_FIELD: (self.filename, self.data, self.content_type)}

    def form(self) -> dict[str, str]:
        return {LABEL_FIELD: self.label}


def build_payload(artifact: AudioArtifact, metadata: UploadMetadata) -> UploadPayload:
    return UploadPayload(
        filename=build_filename(metadata, artifact.mime_type),
        content_type=artifact.mime_type or "application/octet-stream",
        data=artifact.data,
        label=json.dumps(metadata.to_label()),
    )


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def classify_response(response: httpx.Response) -> UploadOutcome:
    """Turn a 2xx answer into `Delivered` or, when the proxy degraded, `AcceptedLocally`."""

    body = _response_body(response)
    if isinstance(body, Mapping) and body.get("outcome") == AcceptedLocally.kind:
        return AcceptedLocally(
            reason=str(body.get("reason") or body.get("message") or "Accepted locally"),
            local_file=body.get("localFile"),
        )
    return Delivered(remote_status=response.status_code, remote_body=body)


Sleeper = Callable[[float], Awaitable[Any]]


class UploadPipeline:
    """Deliver takes with timeout, bounded retries and outcome classification."""

    def __init__(
        self,
        options: UploadOptions,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._options = options
        self._transport = transport
        self._sleep = sleep

    @property
    def options(self) -> UploadOptions:
        return self._options

    async def submit(
        self,
        artifact: AudioArtifact,
        metadata: UploadMetadata,
        options: UploadOptions | None = None,
    ) -> UploadOutcome:
        """Send one take, retrying recoverable failures up to ``retry_attempts`` times."""

        opts = options or self._options
        payload = build_payload(artifact, metadata)
        attempts = max(opts.retry_attempts, 1)
        last_error: UploadError = TransportError("Upload was not attempted")

        async with httpx.AsyncClient(transport=self._transport) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await self._send(client, payload, opts)
                except UploadError as exc:
                    last_error = exc
                    observe_upload_attempt("transport_error")
                else:
                    if response.is_success:
                        observe_upload_attempt("success")
                        outcome = classify_response(response)
                        logger.info(
                            "Upload successful file=%s attempt=%d outcome=%s",
                            payload.filename,
                            attempt,
                            outcome.kind,
                        )
                        observe_upload_outcome(outcome.kind)
                        return outcome

                    body = _response_body(response)
                    if 400 <= response.status_code < 500:
                        observe_upload_attempt("rejected")
                        last_error = RemoteRejectedError(response.status_code, body)
                    else:
                        observe_upload_attempt("server_error")
                        last_error = RemoteServerError(response.status_code, body)

                if not last_error.retryable:
                    logger.warning(
                        "Upload not retryable file=%s attempt=%d: %s",
                        payload.filename,
                        attempt,
                        last_error,
                    )
                    observe_upload_outcome(Failed.kind)
                    return Failed(last_error, attempts=attempt)

                if attempt < attempts:
                    logger.info(
                        "Upload failed, retrying (%d/%d): %s",
                        attempt,
                        attempts,
                        last_error,
                    )
                    await self._sleep(opts.retry_delay)

        logger.error(
            "Upload failed after %d attempts file=%s: %s",
            attempts,
            payload.filename,
            last_error,
        )
        observe_upload_outcome(Failed.kind)
        return Failed(last_error, attempts=attempts)

    async def _send(
        self,
        client: httpx.AsyncClient,
        payload: UploadPayload,
        options: UploadOptions,
    ) -> httpx.Response:
        """One POST bounded by its own timeout; the timeout cancels only this request."""

        request = client.post(
            options.endpoint,
            files=payload.files(),
            data=payload.form(),
            headers=options.headers(),
            timeout=options.timeout,
        )
        try:
            return await asyncio.wait_for(request, timeout=options.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise UploadTimeoutError(
                f"Upload timed out after {options.timeout:g} s"
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Network error: {exc}") from exc


__all__ = [
    "FILE_FIELD",
    "LABEL_FIELD",
    "UploadOptions",
    "UploadPayload",
    "UploadPipeline",
    "build_filename",
    "build_payload",
    "classify_response",
    "extension_for",
]
