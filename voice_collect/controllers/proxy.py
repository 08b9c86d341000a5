"""Collection proxy endpoint.

Browsers post their takes here; the proxy forwards them to the remote
collection service and keeps them locally when that service is down.
"""

import logging
from typing import Any, Mapping, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from voice_collect.controllers.dependencies import ProxyDep
from voice_collect.domain.errors import (
    ProxyRequestError,
    RemoteRejectedError,
    RemoteServerError,
    RemoteUnavailableError,
    TranscodeError,
)
from voice_collect.domain.models import AcceptedLocally, Delivered, UploadOutcome
from voice_collect.views import AcceptedLocallyResponse

router = APIRouter(prefix="/api", tags=["proxy"])

logger = logging.getLogger(__name__)

_AUDIO_FILE_UPLOAD = File(None)
_LABEL_FORM = Form(None)


def _json_body(body: Any, fallback_message: str) -> Any:
    if isinstance(body, (Mapping, list)):
        return body
    return {"message": str(body) if body else fallback_message}


def outcome_response(outcome: UploadOutcome) -> JSONResponse:
    """HTTP shape of a forwarding outcome."""

    if isinstance(outcome, Delivered):
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=_json_body(outcome.remote_body, "Delivered"),
        )

    if isinstance(outcome, AcceptedLocally):
        payload = AcceptedLocallyResponse(reason=outcome.reason, local_file=outcome.local_file)
        return JSONResponse(status_code=status.HTTP_200_OK, content=payload.model_dump(by_alias=True))

    error = outcome.error
    if isinstance(error, (RemoteRejectedError, RemoteServerError)):
        return JSONResponse(
            status_code=error.status_code,
            content={"success": False, "detail": str(error), "remote": error.body},
        )
    if isinstance(error, RemoteUnavailableError):
        return JSONResponse(status_code=error.status_code, content={"success": False, "detail": str(error)})
    if isinstance(error, TranscodeError):
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"success": False, "detail": str(error)})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "detail": f"Proxy error: {error}"},
    )


@router.post("/proxy")
async def proxy_recording(
    proxy: ProxyDep,
    file: Optional[UploadFile] = _AUDIO_FILE_UPLOAD,
    label: Optional[str] = _LABEL_FORM,
) -> JSONResponse:
    """Forward one recording to the collection service."""

    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No audio file provided")

    raw_bytes = await file.read()
    try:
        outcome = await proxy.forward(
            raw_bytes,
            file.content_type,
            label,
            filename=file.filename,
        )
    except ProxyRequestError as exc:
        logger.warning("Rejected proxy request: %s", exc)
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    return outcome_response(outcome)
