"""Recording session API.

One `SessionController` per client key. The browser records audio itself and
uploads each finished take; every other action is a small POST that moves the
state machine and returns the resulting state. Illegal transitions surface as
409, rejected takes as 422 (see the handlers registered in ``main``).
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from voice_collect.config.settings import Settings
from voice_collect.controllers.dependencies import RegistryDep, SettingsDep
from voice_collect.domain.errors import InvalidTransitionError
from voice_collect.domain.models import AcceptedLocally, AudioArtifact, Delivered, Failed
from voice_collect.services.capture import UploadedCapture
from voice_collect.services.session_controller import Screen, SessionController
from voice_collect.services.session_registry import SessionRegistry
from voice_collect.views import (
    BreakResponse,
    ConsentRequest,
    SessionStateResponse,
    SubmitResponse,
)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

logger = logging.getLogger(__name__)

_AUDIO_FILE_UPLOAD = File(...)
_DURATION_FORM = Form(..., ge=0)
_MIME_TYPE_FORM = Form(None)


def _controller(registry: SessionRegistry, client_key: str) -> SessionController:
    try:
        return registry.get(client_key)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from None


def _state(client_key: str, controller: SessionController, settings: Settings) -> SessionStateResponse:
    return SessionStateResponse.from_controller(
        client_key,
        controller,
        allow_skip=settings.ui.allow_skip,
        practice_enabled=settings.ui.enable_practice_mode,
    )


async def _artifact(audio: UploadFile, duration: float, mime_type: Optional[str], settings: Settings) -> AudioArtifact:
    return AudioArtifact(
        data=await audio.read(),
        mime_type=mime_type or audio.content_type or settings.recording.mime_type,
        duration_seconds=duration,
    )


@router.post("/{client_key}", response_model=SessionStateResponse, response_model_by_alias=True)
async def open_session(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    """Create a session for the client, resuming a recent snapshot when one exists."""

    try:
        controller = await registry.open(client_key)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _state(client_key, controller, settings)


@router.get("/{client_key}", response_model=SessionStateResponse, response_model_by_alias=True)
async def get_session(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    return _state(client_key, _controller(registry, client_key), settings)


@router.post("/{client_key}/consent", response_model=SessionStateResponse, response_model_by_alias=True)
async def give_consent(
    client_key: str,
    request: ConsentRequest,
    registry: RegistryDep,
    settings: SettingsDep,
) -> SessionStateResponse:
    controller = _controller(registry, client_key)
    await controller.grant_consent(request.accepted)
    return _state(client_key, controller, settings)


@router.post("/{client_key}/practice", response_model=SessionStateResponse, response_model_by_alias=True)
async def enter_practice(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    controller = _controller(registry, client_key)
    controller.enter_practice()
    return _state(client_key, controller, settings)


@router.post("/{client_key}/practice/take", response_model=SessionStateResponse, response_model_by_alias=True)
async def practice_take(
    client_key: str,
    registry: RegistryDep,
    settings: SettingsDep,
    audio: UploadFile = _AUDIO_FILE_UPLOAD,
    duration: float = _DURATION_FORM,
    mime_type: Optional[str] = _MIME_TYPE_FORM,
) -> SessionStateResponse:
    """Check a practice take; it is never uploaded."""

    controller = _controller(registry, client_key)
    if controller.screen is not Screen.PRACTICE:
        raise InvalidTransitionError("Practice mode is not active")
    await controller.record(UploadedCapture(await _artifact(audio, duration, mime_type, settings)))
    return _state(client_key, controller, settings)


@router.post("/{client_key}/practice/finish", response_model=SessionStateResponse, response_model_by_alias=True)
async def finish_practice(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    controller = _controller(registry, client_key)
    await controller.finish_practice()
    return _state(client_key, controller, settings)


@router.post("/{client_key}/takes", response_model=SessionStateResponse, response_model_by_alias=True)
async def upload_take(
    client_key: str,
    registry: RegistryDep,
    settings: SettingsDep,
    audio: UploadFile = _AUDIO_FILE_UPLOAD,
    duration: float = _DURATION_FORM,
    mime_type: Optional[str] = _MIME_TYPE_FORM,
) -> SessionStateResponse:
    """Hand a finished recording to the controller for review."""

    controller = _controller(registry, client_key)
    await controller.record(UploadedCapture(await _artifact(audio, duration, mime_type, settings)))
    return _state(client_key, controller, settings)


@router.post("/{client_key}/redo", response_model=SessionStateResponse, response_model_by_alias=True)
async def redo_take(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    controller = _controller(registry, client_key)
    controller.redo()
    return _state(client_key, controller, settings)


@router.post("/{client_key}/submit", response_model=SubmitResponse, response_model_by_alias=True)
async def submit_take(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SubmitResponse:
    """Upload the reviewed take. A hard failure keeps the take and answers 502."""

    controller = _controller(registry, client_key)
    result = await controller.submit()
    outcome = result.outcome
    if isinstance(outcome, Failed):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.message)

    return SubmitResponse(
        outcome=outcome.kind,
        uploaded=isinstance(outcome, Delivered),
        message=result.message,
        advanced=result.advanced,
        lifetime_count=result.lifetime_count,
        thank_you=result.thank_you,
        break_suggested=result.break_suggested,
        reason=outcome.reason if isinstance(outcome, AcceptedLocally) else None,
        local_file=outcome.local_file if isinstance(outcome, AcceptedLocally) else None,
        state=_state(client_key, controller, settings),
    )


@router.post("/{client_key}/skip", response_model=SessionStateResponse, response_model_by_alias=True)
async def skip_phrase(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    controller = _controller(registry, client_key)
    await controller.skip()
    return _state(client_key, controller, settings)


@router.post("/{client_key}/break", response_model=BreakResponse, response_model_by_alias=True)
async def take_break(client_key: str, registry: RegistryDep, settings: SettingsDep) -> BreakResponse:
    controller = _controller(registry, client_key)
    pause = controller.take_break()
    return BreakResponse(
        completed=pause.completed,
        remaining=pause.remaining,
        state=_state(client_key, controller, settings),
    )


@router.post("/{client_key}/resume", response_model=SessionStateResponse, response_model_by_alias=True)
async def resume_session(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    controller = _controller(registry, client_key)
    controller.resume()
    return _state(client_key, controller, settings)


@router.post("/{client_key}/restart", response_model=SessionStateResponse, response_model_by_alias=True)
async def restart_session(client_key: str, registry: RegistryDep, settings: SettingsDep) -> SessionStateResponse:
    controller = _controller(registry, client_key)
    await controller.restart()
    return _state(client_key, controller, settings)
