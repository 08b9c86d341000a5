"""Schemas for the recording session API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from voice_collect.services.phrase_deck import Phrase
from voice_collect.services.session_controller import SessionController, SessionSummary


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConsentRequest(BaseModel):
    accepted: bool


class PhraseView(_CamelModel):
    index: int
    text: str


class PendingTakeView(_CamelModel):
    phrase_index: int = Field(alias="phraseIndex")
    phrase_text: str = Field(alias="phraseText")
    duration: float
    mime_type: str = Field(alias="mimeType")
    status: str


class SummaryView(_CamelModel):
    session_id: str = Field(alias="sessionId")
    total_recorded: int = Field(alias="totalRecorded")
    total_skipped: int = Field(alias="totalSkipped")
    elapsed_seconds: float = Field(alias="elapsedSeconds")
    elapsed_minutes: int = Field(alias="elapsedMinutes")

    @classmethod
    def from_summary(cls, summary: SessionSummary) -> "SummaryView":
        return cls(
            session_id=summary.session_id,
            total_recorded=summary.total_recorded,
            total_skipped=summary.total_skipped,
            elapsed_seconds=round(summary.elapsed_seconds, 3),
            elapsed_minutes=summary.elapsed_minutes,
        )


class SessionStateResponse(_CamelModel):
    client_key: str = Field(alias="clientKey")
    session_id: str = Field(alias="sessionId")
    screen: str
    phase: str
    consented: bool
    restored: bool
    current_index: int = Field(alias="currentIndex")
    total_phrases: int = Field(alias="totalPhrases")
    completed: int
    skipped: int
    current_phrase: Optional[PhraseView] = Field(default=None, alias="currentPhrase")
    pending_take: Optional[PendingTakeView] = Field(default=None, alias="pendingTake")
    summary: Optional[SummaryView] = None
    allow_skip: bool = Field(alias="allowSkip")
    practice_enabled: bool = Field(alias="practiceEnabled")

    @classmethod
    def from_controller(
        cls,
        client_key: str,
        controller: SessionController,
        *,
        allow_skip: bool,
        practice_enabled: bool,
    ) -> "SessionStateResponse":
        session = controller.session
        phrase = controller.current_phrase()
        take = controller.take
        return cls(
            client_key=client_key,
            session_id=session.session_id if session else "",
            screen=controller.screen.value,
            phase=controller.phase.value,
            consented=controller.consented,
            restored=controller.restored,
            current_index=session.current_index if session else 0,
            total_phrases=len(controller.deck),
            completed=len(session.completed_takes) if session else 0,
            skipped=len(session.skipped_phrases) if session else 0,
            current_phrase=PhraseView(index=phrase.index, text=phrase.text)
            if isinstance(phrase, Phrase)
            else None,
            pending_take=PendingTakeView(
                phrase_index=take.phrase_index,
                phrase_text=take.phrase_text,
                duration=take.duration,
                mime_type=take.artifact.mime_type,
                status=take.status.value,
            )
            if take is not None
            else None,
            summary=SummaryView.from_summary(controller.summary) if controller.summary else None,
            allow_skip=allow_skip,
            practice_enabled=practice_enabled,
        )


class BreakResponse(_CamelModel):
    completed: int
    remaining: int
    state: SessionStateResponse


class SubmitResponse(_CamelModel):
    outcome: str
    uploaded: bool
    message: str
    advanced: bool
    lifetime_count: int = Field(alias="lifetimeCount")
    thank_you: bool = Field(alias="thankYou")
    break_suggested: bool = Field(alias="breakSuggested")
    reason: Optional[str] = None
    local_file: Optional[str] = Field(default=None, alias="localFile")
    state: SessionStateResponse
