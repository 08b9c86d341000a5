"""Tests for the recording session state machine."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakePipeline, make_artifact
from voice_collect.domain.errors import (
    CaptureError,
    InvalidTransitionError,
    SkipNotAllowedError,
    TakeValidationError,
    TransportError,
)
from voice_collect.domain.models import AcceptedLocally, Delivered, Failed
from voice_collect.services.capture import RecordingCapture, UploadedCapture
from voice_collect.services.phrase_deck import SESSION_COMPLETE
from voice_collect.services.session_controller import (
    FREE_RECORDING_LABEL,
    Phase,
    Screen,
)

KEY = "voice_research_session"


def _assert_consistent(controller) -> None:
    session = controller.session
    assert session.current_index == len(session.completed_takes) + len(session.skipped_phrases)


async def _ready(controller):
    await controller.start()
    await controller.grant_consent(True)
    return controller


async def _record(controller, duration: float = 1.2):
    return await controller.record(UploadedCapture(make_artifact(duration=duration)))


class BlockingCapture(RecordingCapture):
    """Capture that only finishes once stopped."""

    def __init__(self) -> None:
        self.stopped = asyncio.Event()
        self.stop_calls = 0

    async def capture(self, max_duration):
        await self.stopped.wait()
        return make_artifact(duration=2.0)

    async def stop(self) -> None:
        self.stop_calls += 1
        self.stopped.set()


class GatedPipeline(FakePipeline):
    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def submit(self, artifact, metadata, options=None):
        await self.release.wait()
        return await super().submit(artifact, metadata, options)


@pytest.mark.asyncio
async def test_start_shuffles_and_waits_for_consent(build_controller, store) -> None:
    controller = build_controller()

    session = await controller.start()

    assert controller.screen is Screen.WELCOME
    assert sorted(session.phrase_order) == [0, 1, 2]
    assert session.session_id.startswith("session_")
    assert await store.load(KEY) is not None


@pytest.mark.asyncio
async def test_recording_requires_consent(build_controller) -> None:
    controller = build_controller()
    await controller.start()

    with pytest.raises(InvalidTransitionError):
        await _record(controller)


@pytest.mark.asyncio
async def test_take_shorter_than_minimum_never_reaches_pipeline(build_controller) -> None:
    pipeline = FakePipeline()
    controller = await _ready(build_controller(pipeline=pipeline))

    with pytest.raises(TakeValidationError):
        await _record(controller, duration=0.49)

    assert controller.phase is Phase.IDLE
    assert controller.take is None
    with pytest.raises(InvalidTransitionError):
        await controller.submit()
    assert pipeline.calls == []

    take = await _record(controller, duration=0.5)
    assert controller.phase is Phase.REVIEWING
    assert take.duration == 0.5


@pytest.mark.asyncio
async def test_capture_error_keeps_session_on_current_phrase(build_controller) -> None:
    controller = await _ready(build_controller())
    phrase = controller.current_phrase()

    with pytest.raises(CaptureError):
        await controller.record(UploadedCapture(None))

    assert controller.phase is Phase.IDLE
    assert controller.current_phrase() == phrase


@pytest.mark.asyncio
async def test_three_successful_uploads_complete_the_session(build_controller, store) -> None:
    pipeline = FakePipeline()
    controller = await _ready(build_controller(pipeline=pipeline))
    order = list(controller.session.phrase_order)

    for _ in range(3):
        await _record(controller)
        result = await controller.submit()
        assert result.advanced
        _assert_consistent(controller)

    assert controller.screen is Screen.COMPLETION
    assert controller.summary.total_recorded == 3
    assert controller.summary.session_id == controller.session.session_id
    assert await store.load(KEY) is None
    assert [metadata.phrase_id for _, metadata in pipeline.calls] == order
    assert result.summary is controller.summary


@pytest.mark.asyncio
async def test_skip_then_submit_the_rest(build_controller) -> None:
    controller = await _ready(build_controller())

    assert await controller.skip() is None
    _assert_consistent(controller)
    for _ in range(2):
        await _record(controller)
        await controller.submit()
        _assert_consistent(controller)

    session = controller.session
    assert len(session.completed_takes) == 2
    assert len(session.skipped_phrases) == 1
    assert controller.current_phrase() is SESSION_COMPLETE
    assert controller.screen is Screen.COMPLETION
    assert controller.summary.total_skipped == 1


@pytest.mark.asyncio
async def test_skip_disabled(build_controller) -> None:
    controller = await _ready(build_controller(allow_skip=False))

    with pytest.raises(SkipNotAllowedError):
        await controller.skip()
    assert controller.session.current_index == 0


@pytest.mark.asyncio
async def test_locally_accepted_take_counts_as_completed(build_controller) -> None:
    pipeline = FakePipeline(AcceptedLocally(reason="Collection service timed out after 10 seconds"))
    controller = await _ready(build_controller(pipeline=pipeline))

    await _record(controller)
    result = await controller.submit()

    assert result.advanced
    completed = controller.session.completed_takes
    assert len(completed) == 1
    assert completed[0].uploaded is False
    assert controller.session.current_index == 1


@pytest.mark.asyncio
async def test_failed_upload_preserves_the_take(build_controller) -> None:
    failure = Failed(TransportError("Network error"), attempts=3)
    pipeline = FakePipeline(failure)
    controller = await _ready(build_controller(pipeline=pipeline))
    take = await _record(controller)

    result = await controller.submit()

    assert result.outcome is failure
    assert not result.advanced
    assert controller.phase is Phase.REVIEWING
    assert controller.take is take
    assert controller.session.current_index == 0
    _assert_consistent(controller)

    retry = await controller.submit()
    assert isinstance(retry.outcome, Delivered)
    assert controller.session.current_index == 1


@pytest.mark.asyncio
async def test_redo_discards_the_pending_take(build_controller) -> None:
    controller = await _ready(build_controller())
    await _record(controller)

    controller.redo()

    assert controller.take is None
    assert controller.phase is Phase.IDLE
    with pytest.raises(InvalidTransitionError):
        controller.redo()


@pytest.mark.asyncio
async def test_double_submission_is_refused(build_controller) -> None:
    pipeline = GatedPipeline()
    controller = await _ready(build_controller(pipeline=pipeline))
    await _record(controller)

    first = asyncio.create_task(controller.submit())
    await asyncio.sleep(0)
    assert controller.phase is Phase.SUBMITTING
    with pytest.raises(InvalidTransitionError):
        await controller.submit()
    with pytest.raises(InvalidTransitionError):
        await _record(controller)

    pipeline.release.set()
    result = await first
    assert result.advanced
    assert len(pipeline.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("accepted", [True, False])
async def test_consent_is_refused_while_free_take_uploads(build_controller, accepted) -> None:
    pipeline = GatedPipeline()
    controller = build_controller(pipeline=pipeline)
    await controller.start()
    await controller.grant_consent(False)
    take = await _record(controller)

    upload = asyncio.create_task(controller.submit())
    await asyncio.sleep(0)
    with pytest.raises(InvalidTransitionError):
        await controller.grant_consent(accepted)
    assert controller.take is take
    assert controller.screen is Screen.FREE

    pipeline.release.set()
    result = await upload

    assert isinstance(result.outcome, Delivered)
    assert not result.advanced
    assert result.lifetime_count == 1
    assert controller.session.completed_takes == []
    assert controller.phase is Phase.IDLE

    assert await controller.grant_consent(True) is Screen.RECORDING
    second = await _record(controller)
    assert controller.take is second


@pytest.mark.asyncio
async def test_consent_cannot_change_while_capturing(build_controller) -> None:
    controller = build_controller()
    await controller.start()
    await controller.grant_consent(False)
    capture = BlockingCapture()

    recording = asyncio.create_task(controller.record(capture))
    await asyncio.sleep(0)
    with pytest.raises(InvalidTransitionError):
        await controller.grant_consent(True)

    await controller.stop_capture()
    await recording
    assert controller.phase is Phase.REVIEWING


@pytest.mark.asyncio
async def test_stop_capture_is_idempotent(build_controller) -> None:
    controller = await _ready(build_controller())
    capture = BlockingCapture()

    assert await controller.stop_capture() is False
    recording = asyncio.create_task(controller.record(capture))
    await asyncio.sleep(0)
    assert controller.phase is Phase.CAPTURING

    assert await controller.stop_capture() is True
    await recording
    assert await controller.stop_capture() is False
    assert capture.stop_calls == 1
    assert controller.phase is Phase.REVIEWING


@pytest.mark.asyncio
async def test_break_is_suggested_every_n_takes(build_controller) -> None:
    controller = await _ready(build_controller(phrases=("a", "b", "c", "d"), break_after=2))

    await _record(controller)
    first = await controller.submit()
    await _record(controller)
    second = await controller.submit()

    assert not first.break_suggested
    assert second.break_suggested
    assert controller.screen is Screen.BREAK
    with pytest.raises(InvalidTransitionError):
        await _record(controller)

    controller.resume()
    assert controller.screen is Screen.RECORDING


@pytest.mark.asyncio
async def test_no_break_when_last_phrase_is_done(build_controller) -> None:
    controller = await _ready(build_controller(phrases=("a", "b"), break_after=2))

    for _ in range(2):
        await _record(controller)
        result = await controller.submit()

    assert not result.break_suggested
    assert controller.screen is Screen.COMPLETION


@pytest.mark.asyncio
async def test_manual_break_reports_progress(build_controller) -> None:
    controller = await _ready(build_controller())
    await _record(controller)
    await controller.submit()

    status = controller.take_break()

    assert (status.completed, status.remaining) == (1, 2)
    assert controller.screen is Screen.BREAK
    controller.resume()
    _assert_consistent(controller)


@pytest.mark.asyncio
async def test_resume_from_snapshot(build_controller) -> None:
    first = await _ready(build_controller())
    await _record(first)
    await first.submit()

    second = build_controller()
    session = await second.start()

    assert second.restored
    assert session.session_id == first.session.session_id
    assert session.phrase_order == first.session.phrase_order
    assert second.current_phrase() == first.current_phrase()
    _assert_consistent(second)


@pytest.mark.asyncio
async def test_snapshot_that_does_not_fit_the_phrases_is_discarded(build_controller) -> None:
    first = await _ready(build_controller())
    await _record(first)
    await first.submit()

    second = build_controller(phrases=("only one",))
    session = await second.start()

    assert not second.restored
    assert session.session_id != first.session.session_id
    assert session.phrase_order == [0]


@pytest.mark.asyncio
async def test_restart_keeps_the_milestone(build_controller) -> None:
    controller = await _ready(build_controller(thank_you_after=3))
    results = []
    for _ in range(3):
        await _record(controller)
        results.append(await controller.submit())
    assert [result.thank_you for result in results] == [False, False, True]
    assert controller.screen is Screen.COMPLETION

    old_id = controller.session.session_id
    session = await controller.restart()

    assert session.session_id != old_id
    assert session.current_index == 0
    assert session.completed_takes == [] and session.skipped_phrases == []
    assert controller.screen is Screen.RECORDING
    await _record(controller)
    after = await controller.submit()
    assert after.lifetime_count == 4
    assert after.thank_you is False


@pytest.mark.asyncio
async def test_declined_consent_records_freely(build_controller) -> None:
    pipeline = FakePipeline()
    controller = build_controller(pipeline=pipeline)
    await controller.start()

    assert await controller.grant_consent(False) is Screen.FREE
    await _record(controller)
    result = await controller.submit()

    assert not result.advanced
    assert result.lifetime_count == 1
    assert controller.session.current_index == 0
    assert controller.session.completed_takes == []
    assert pipeline.calls[0][1].phrase_text == FREE_RECORDING_LABEL


@pytest.mark.asyncio
async def test_practice_takes_are_never_uploaded(build_controller) -> None:
    pipeline = FakePipeline()
    controller = build_controller(pipeline=pipeline)
    await controller.start()

    controller.enter_practice()
    await _record(controller)
    assert controller.phase is Phase.REVIEWING
    with pytest.raises(InvalidTransitionError):
        await controller.submit()

    assert await controller.finish_practice() is Screen.WELCOME
    assert await controller.grant_consent(True) is Screen.RECORDING
    assert pipeline.calls == []
    assert controller.take is None


@pytest.mark.asyncio
async def test_practice_disabled(build_controller) -> None:
    controller = build_controller(practice=False)
    await controller.start()

    with pytest.raises(InvalidTransitionError):
        controller.enter_practice()


@pytest.mark.asyncio
async def test_empty_phrase_list_completes_on_consent(build_controller) -> None:
    controller = build_controller(phrases=())
    await controller.start()

    await controller.grant_consent(True)

    assert controller.screen is Screen.COMPLETION
    assert controller.summary.total_recorded == 0


@pytest.mark.asyncio
async def test_upload_metadata_carries_configuration(build_controller) -> None:
    pipeline = FakePipeline()
    controller = await _ready(build_controller(pipeline=pipeline))
    phrase = controller.current_phrase()
    await _record(controller, duration=2.25)

    await controller.submit()

    artifact, metadata = pipeline.calls[0]
    label = metadata.to_label()
    assert label["phraseId"] == phrase.index
    assert label["phraseText"] == phrase.text
    assert label["duration"] == 2.25
    assert label["audioFormat"] == "audio/wav"
    assert label["sampleRate"] == 16000
    assert label["projectId"] == "test_project"
    assert label["cohort"] == "pilot"
    assert artifact.duration_seconds == 2.25
