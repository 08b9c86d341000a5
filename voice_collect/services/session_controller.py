"""State machine driving one participant through a recording session.

Screens: ``welcome -> (practice) -> recording <-> break -> completion``, plus
``free`` when consent is declined. While on the recording screen each phrase
moves through ``idle -> capturing -> reviewing -> submitting -> idle``.

The controller exclusively owns the current `Take`. It persists the session
snapshot after every transition that changes progress, and it keeps
``current_index == len(completed_takes) + len(skipped_phrases)`` at all times
outside of `restart`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from voice_collect.config.settings import (
    MetadataConfig,
    RecordingConfig,
    SessionConfig,
    UiConfig,
)
from voice_collect.domain.errors import (
    CaptureError,
    InvalidTransitionError,
    SkipNotAllowedError,
    TakeValidationError,
)
from voice_collect.domain.models import (
    AcceptedLocally,
    CompletedTake,
    Delivered,
    Failed,
    Session,
    SkippedPhrase,
    Take,
    TakeStatus,
    UploadMetadata,
    UploadOutcome,
)
from voice_collect.services.capture import RecordingCapture
from voice_collect.services.phrase_deck import Phrase, PhraseDeck, SessionComplete
from voice_collect.services.session_store import (
    SESSION_KEY,
    MilestoneTracker,
    SessionStore,
)
from voice_collect.services.upload_pipeline import UploadPipeline

logger = logging.getLogger(__name__)

FREE_RECORDING_LABEL = "Free recording"
PRACTICE_LABEL = "Practice"
UNASSIGNED_PHRASE = -1


class Screen(str, Enum):
    WELCOME = "welcome"
    PRACTICE = "practice"
    RECORDING = "recording"
    BREAK = "break"
    COMPLETION = "completion"
    FREE = "free"


class Phase(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    REVIEWING = "reviewing"
    SUBMITTING = "submitting"


@dataclass(frozen=True)
class SessionSummary:
    """Figures shown on the completion screen."""

    session_id: str
    total_recorded: int
    total_skipped: int
    elapsed_seconds: float

    @property
    def elapsed_minutes(self) -> int:
        return int(self.elapsed_seconds // 60)


@dataclass(frozen=True)
class BreakStatus:
    completed: int
    remaining: int


@dataclass(frozen=True)
class SubmitResult:
    """What happened to a submitted take and where the session went next."""

    outcome: UploadOutcome
    advanced: bool = False
    lifetime_count: int = 0
    thank_you: bool = False
    break_suggested: bool = False
    summary: Optional[SessionSummary] = None

    @property
    def message(self) -> str:
        if isinstance(self.outcome, Failed):
            return "Failed to upload recording. Please check your connection and try again."
        if isinstance(self.outcome, AcceptedLocally):
            return "Recording saved; it will be delivered when the service is back."
        return "Recording submitted successfully!"


class SessionController:
    """Coordinate deck, capture, upload and persistence for one participant."""

    def __init__(
        self,
        deck: PhraseDeck,
        pipeline: UploadPipeline,
        *,
        recording: RecordingConfig,
        ui: UiConfig,
        metadata: MetadataConfig,
        session_config: SessionConfig,
        store: SessionStore | None = None,
        milestones: MilestoneTracker | None = None,
        snapshot_key: str = SESSION_KEY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._deck = deck
        self._pipeline = pipeline
        self._recording = recording
        self._ui = ui
        self._metadata = metadata
        self._session_config = session_config
        self._store = store
        self._milestones = milestones
        self._snapshot_key = snapshot_key
        self._clock = clock

        self.screen = Screen.WELCOME
        self.phase = Phase.IDLE
        self.consented = False
        self.restored = False
        self.session: Session | None = None
        self.take: Take | None = None
        self.summary: SessionSummary | None = None
        self._capture: RecordingCapture | None = None

    # -- helpers --------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def deck(self) -> PhraseDeck:
        return self._deck

    @property
    def persists(self) -> bool:
        return self._store is not None and self._session_config.enable_local_storage

    def _require_session(self) -> Session:
        if self.session is None:
            raise InvalidTransitionError("Session has not been started")
        return self.session

    def _require_screen(self, *screens: Screen) -> None:
        if self.screen not in screens:
            allowed = ", ".join(screen.value for screen in screens)
            raise InvalidTransitionError(
                f"Action not available on the {self.screen.value} screen (expected {allowed})"
            )

    def _require_not_busy(self) -> None:
        if self.phase is Phase.SUBMITTING:
            raise InvalidTransitionError("An upload is already in progress")
        if self.phase is Phase.CAPTURING:
            raise InvalidTransitionError("A recording is in progress")

    def _discard_take(self) -> None:
        if self.take is not None:
            self.take.status = TakeStatus.DISCARDED
        self.take = None
        self.phase = Phase.IDLE

    async def _save(self) -> None:
        if self.persists and self.session is not None:
            await self._store.save(self._snapshot_key, self.session)

    def current_phrase(self) -> Union[Phrase, SessionComplete]:
        return self._deck.current()

    @property
    def completed_count(self) -> int:
        return len(self.session.completed_takes) if self.session else 0

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> Session:
        """Resume a fresh snapshot when one exists, otherwise shuffle a new session."""

        self._require_not_busy()
        self.screen = Screen.WELCOME
        self.phase = Phase.IDLE
        self.take = None
        self.summary = None

        restored = await self._restore() if self.persists else None
        if restored is not None:
            self.session = restored
            self.restored = True
            logger.info(
                "Restored session %s at %d/%d",
                restored.session_id,
                restored.current_index,
                len(restored.phrase_order),
            )
            return restored

        self._deck.shuffle()
        self.session = Session.new(self._deck.order, started_at=self._now_ms())
        self.restored = False
        logger.info("Started session %s with %d phrases", self.session.session_id, len(self._deck))
        await self._save()
        return self.session

    async def _restore(self) -> Session | None:
        snapshot = await self._store.load(self._snapshot_key)
        if snapshot is None:
            return None
        if not snapshot.is_consistent:
            logger.warning("Discarding session %s: progress counters disagree", snapshot.session_id)
            await self._store.clear(self._snapshot_key)
            return None
        try:
            self._deck.restore(snapshot.phrase_order, snapshot.current_index)
        except ValueError as exc:
            logger.warning("Discarding session %s: %s", snapshot.session_id, exc)
            await self._store.clear(self._snapshot_key)
            return None
        return snapshot

    async def grant_consent(self, accepted: bool) -> Screen:
        """Enter the gated flow on consent; declining switches to free recording."""

        self._require_session()
        self._require_screen(Screen.WELCOME, Screen.FREE)
        self._require_not_busy()
        self._discard_take()
        if not accepted:
            self.consented = False
            self.screen = Screen.FREE
            logger.info("Consent declined; free recording mode")
            return self.screen

        self.consented = True
        self.screen = Screen.RECORDING
        if self._deck.is_exhausted:
            await self._complete()
        return self.screen

    def enter_practice(self) -> None:
        if not self._ui.enable_practice_mode:
            raise InvalidTransitionError("Practice mode is disabled")
        self._require_session()
        self._require_screen(Screen.WELCOME)
        self._require_not_busy()
        self._discard_take()
        self.screen = Screen.PRACTICE

    async def finish_practice(self) -> Screen:
        """Leave practice; practice takes are never uploaded or counted."""

        self._require_screen(Screen.PRACTICE)
        self._require_not_busy()
        self._discard_take()
        if not self.consented:
            self.screen = Screen.WELCOME
            return self.screen
        self.screen = Screen.RECORDING
        if self._deck.is_exhausted:
            await self._complete()
        return self.screen

    # -- capture --------------------------------------------------------------

    def _prompt(self) -> tuple[int, str]:
        if self.screen is Screen.PRACTICE:
            return UNASSIGNED_PHRASE, PRACTICE_LABEL
        if self.screen is Screen.FREE:
            return UNASSIGNED_PHRASE, FREE_RECORDING_LABEL
        phrase = self._deck.current()
        if isinstance(phrase, SessionComplete):
            raise InvalidTransitionError("All phrases have been handled")
        return phrase.index, phrase.text

    async def record(self, capture: RecordingCapture) -> Take:
        """Capture a take and hold it for review; short takes never reach the pipeline."""

        self._require_session()
        self._require_screen(Screen.RECORDING, Screen.PRACTICE, Screen.FREE)
        self._require_not_busy()
        phrase_index, phrase_text = self._prompt()
        self._discard_take()

        self.phase = Phase.CAPTURING
        self._capture = capture
        try:
            artifact = await capture.capture(self._recording.max_duration)
        except CaptureError as exc:
            logger.warning("Capture failed: %s", exc)
            self.phase = Phase.IDLE
            raise
        finally:
            self._capture = None

        if artifact.duration_seconds < self._recording.min_duration:
            self.phase = Phase.IDLE
            raise TakeValidationError(
                f"Recording too short ({artifact.duration_seconds:.2f}s). "
                f"Please record at least {self._recording.min_duration:g} seconds."
            )
        if artifact.duration_seconds > self._recording.max_duration:
            logger.warning(
                "Take of %.2f s exceeds the %.2f s limit",
                artifact.duration_seconds,
                self._recording.max_duration,
            )

        self.take = Take(
            artifact=artifact,
            phrase_index=phrase_index,
            phrase_text=phrase_text,
            captured_at=self._now_ms(),
        )
        self.phase = Phase.REVIEWING
        return self.take

    async def stop_capture(self) -> bool:
        """Stop an in-progress capture; a late or repeated stop is ignored."""

        if self.phase is not Phase.CAPTURING or self._capture is None:
            logger.debug("Ignoring stop signal while %s", self.phase.value)
            return False
        await self._capture.stop()
        return True

    def redo(self) -> None:
        if self.phase is not Phase.REVIEWING:
            raise InvalidTransitionError("There is no recording to redo")
        self._discard_take()

    # -- submission -----------------------------------------------------------

    def _metadata_for(self, take: Take) -> UploadMetadata:
        session = self._require_session()
        return UploadMetadata(
            session_id=session.session_id,
            phrase_id=take.phrase_index,
            phrase_text=take.phrase_text,
            timestamp=take.captured_at,
            duration=take.duration,
            audio_format=self._recording.mime_type,
            sample_rate=self._recording.sample_rate,
            project_id=self._metadata.project_id,
            app_version=self._metadata.app_version,
            custom_fields=dict(self._metadata.custom_fields),
        )

    async def submit(self) -> SubmitResult:
        """Upload the reviewed take; success advances the deck, failure keeps the take."""

        self._require_screen(Screen.RECORDING, Screen.FREE)
        if self.phase is Phase.SUBMITTING:
            raise InvalidTransitionError("An upload is already in progress")
        if self.phase is not Phase.REVIEWING or self.take is None:
            raise InvalidTransitionError("There is no recording to submit")

        take = self.take
        free_mode = self.screen is Screen.FREE
        self.phase = Phase.SUBMITTING
        try:
            outcome = await self._pipeline.submit(take.artifact, self._metadata_for(take))
        except Exception:
            self.phase = Phase.REVIEWING
            raise

        if isinstance(outcome, Failed):
            self.phase = Phase.REVIEWING
            logger.error("Submission failed after %d attempts: %s", outcome.attempts, outcome.error)
            return SubmitResult(outcome=outcome)

        take.status = TakeStatus.SUBMITTED
        self.take = None
        self.phase = Phase.IDLE
        lifetime_count, thank_you = 0, False
        if self._milestones is not None:
            lifetime_count, thank_you = await self._milestones.record_submission()

        if free_mode:
            return SubmitResult(outcome=outcome, lifetime_count=lifetime_count, thank_you=thank_you)

        session = self._require_session()
        session.completed_takes.append(
            CompletedTake(
                phrase_index=take.phrase_index,
                phrase_text=take.phrase_text,
                timestamp=take.captured_at,
                duration=take.duration,
                uploaded=isinstance(outcome, Delivered),
            )
        )
        self._deck.advance()
        session.current_index = self._deck.position

        if self._deck.is_exhausted:
            summary = await self._complete()
            return SubmitResult(
                outcome=outcome,
                advanced=True,
                lifetime_count=lifetime_count,
                thank_you=thank_you,
                summary=summary,
            )

        break_suggested = self._break_due()
        if break_suggested:
            self.screen = Screen.BREAK
        await self._save()
        return SubmitResult(
            outcome=outcome,
            advanced=True,
            lifetime_count=lifetime_count,
            thank_you=thank_you,
            break_suggested=break_suggested,
        )

    def _break_due(self) -> bool:
        every = self._ui.break_after_recordings
        return every > 0 and self.completed_count % every == 0 and not self._deck.is_exhausted

    async def skip(self) -> Optional[SessionSummary]:
        """Skip the current phrase; returns the summary when that ends the session."""

        if not self._ui.allow_skip:
            raise SkipNotAllowedError("Skipping phrases is disabled")
        self._require_screen(Screen.RECORDING)
        self._require_not_busy()
        session = self._require_session()
        phrase = self._deck.current()
        if isinstance(phrase, SessionComplete):
            raise InvalidTransitionError("All phrases have been handled")

        self._discard_take()
        session.skipped_phrases.append(
            SkippedPhrase(phrase_index=phrase.index, phrase_text=phrase.text, timestamp=self._now_ms())
        )
        self._deck.advance()
        session.current_index = self._deck.position
        logger.info("Skipped phrase %d", phrase.index)

        if self._deck.is_exhausted:
            return await self._complete()
        await self._save()
        return None

    # -- breaks, completion, restart -----------------------------------------

    def take_break(self) -> BreakStatus:
        self._require_screen(Screen.RECORDING, Screen.BREAK)
        self._require_not_busy()
        self.screen = Screen.BREAK
        return BreakStatus(completed=self.completed_count, remaining=self._deck.remaining)

    def resume(self) -> None:
        self._require_screen(Screen.BREAK)
        self.screen = Screen.RECORDING

    async def _complete(self) -> SessionSummary:
        session = self._require_session()
        self._discard_take()
        self.summary = SessionSummary(
            session_id=session.session_id,
            total_recorded=len(session.completed_takes),
            total_skipped=len(session.skipped_phrases),
            elapsed_seconds=max(self._now_ms() - session.started_at, 0) / 1000,
        )
        self.screen = Screen.COMPLETION
        if self.persists:
            await self._store.clear(self._snapshot_key)
        logger.info(
            "Session %s complete: %d recorded, %d skipped",
            session.session_id,
            self.summary.total_recorded,
            self.summary.total_skipped,
        )
        return self.summary

    async def restart(self) -> Session:
        """Reshuffle and start over; the lifetime milestone counter is untouched."""

        self._require_session()
        self._require_not_busy()
        self._discard_take()
        self._deck.shuffle()
        self.session = Session.new(self._deck.order, started_at=self._now_ms())
        self.summary = None
        self.restored = False
        self.screen = Screen.RECORDING if self.consented else Screen.WELCOME
        logger.info("Restarted as session %s", self.session.session_id)
        if self.screen is Screen.RECORDING and self._deck.is_exhausted:
            await self._complete()
        else:
            await self._save()
        return self.session


__all__ = [
    "BreakStatus",
    "FREE_RECORDING_LABEL",
    "Phase",
    "Screen",
    "SessionController",
    "SessionSummary",
    "SubmitResult",
]
