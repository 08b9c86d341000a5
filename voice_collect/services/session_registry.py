"""Per-client session controllers for the HTTP session API."""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Sequence

from voice_collect.config.settings import Settings
from voice_collect.services.phrase_deck import PhraseDeck
from voice_collect.services.session_controller import Phase, Screen, SessionController
from voice_collect.services.session_store import (
    SESSION_KEY,
    MilestoneTracker,
    SessionStore,
    SnapshotBackend,
)
from voice_collect.services.upload_pipeline import UploadPipeline

logger = logging.getLogger(__name__)

_CLIENT_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")

COMPLETED_GRACE_SECONDS = 10 * 60


def is_valid_client_key(client_key: str) -> bool:
    return bool(_CLIENT_KEY_PATTERN.match(client_key or ""))


class SessionRegistry:
    """Create and cache one controller per client key.

    Snapshot and milestone keys are namespaced by the configured storage
    prefix and the client key, so independent browsers never share progress.
    Controllers left idle longer than the snapshot lifetime are dropped, and
    completed ones after a short grace period; an evicted client resumes from
    its snapshot on the next ``open``.
    """

    def __init__(
        self,
        settings: Settings,
        phrases: Sequence[str],
        pipeline: UploadPipeline,
        backend: SnapshotBackend,
        store: SessionStore,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._phrases = tuple(phrases)
        self._pipeline = pipeline
        self._backend = backend
        self._store = store
        self._clock = clock
        self._idle_seconds = settings.session.snapshot_max_age_hours * 60 * 60
        self._controllers: dict[str, SessionController] = {}
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._controllers)

    def _build(self, client_key: str) -> SessionController:
        prefix = f"{self._settings.session.storage_prefix}{client_key}_"
        return SessionController(
            PhraseDeck(self._phrases),
            self._pipeline,
            recording=self._settings.recording,
            ui=self._settings.ui,
            metadata=self._settings.metadata,
            session_config=self._settings.session,
            store=self._store,
            milestones=MilestoneTracker(
                self._backend,
                prefix=prefix,
                threshold=self._settings.ui.thank_you_after,
            ),
            snapshot_key=f"{prefix}{SESSION_KEY}",
        )

    async def open(self, client_key: str) -> SessionController:
        """Return the live controller for ``client_key``, restoring or starting one if needed."""

        if not is_valid_client_key(client_key):
            raise ValueError("Client key must be 1-128 characters of letters, digits, '.', '_' or '-'")
        self.prune()
        controller = self._controllers.get(client_key)
        if controller is None:
            controller = self._build(client_key)
            await controller.start()
            self._controllers[client_key] = controller
            logger.info("Opened session controller for client %s", client_key)
        self._last_seen[client_key] = self._clock()
        return controller

    def get(self, client_key: str) -> SessionController:
        try:
            controller = self._controllers[client_key]
        except KeyError:
            raise KeyError(f"No open session for client {client_key}") from None
        self._last_seen[client_key] = self._clock()
        return controller

    def close(self, client_key: str) -> None:
        self._controllers.pop(client_key, None)
        self._last_seen.pop(client_key, None)

    def prune(self) -> int:
        """Drop idle controllers; returns how many were closed."""

        now = self._clock()
        expired = []
        for client_key, controller in self._controllers.items():
            if controller.phase in (Phase.CAPTURING, Phase.SUBMITTING):
                continue
            limit = COMPLETED_GRACE_SECONDS if controller.screen is Screen.COMPLETION else self._idle_seconds
            if now - self._last_seen.get(client_key, now) > limit:
                expired.append(client_key)
        for client_key in expired:
            self.close(client_key)
        if expired:
            logger.info("Closed %d idle session controllers", len(expired))
        return len(expired)


__all__ = ["COMPLETED_GRACE_SECONDS", "SessionRegistry", "is_valid_client_key"]
