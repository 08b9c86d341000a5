"""Tests for the collection proxy and its degradation rule."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import WAV_BYTES, FakeTranscoder, RecordingTransport
from voice_collect.config.settings import ProxyConfig
from voice_collect.domain.errors import (
    ProxyRequestError,
    RemoteRejectedError,
    RemoteServerError,
    RemoteUnavailableError,
    TranscodeError,
)
from voice_collect.domain.models import AcceptedLocally, Delivered, Failed
from voice_collect.services.collection_proxy import CollectionProxy
from voice_collect.services.storage import STATUS_DELIVERED, STATUS_PENDING

TARGET = "http://collector.test/collect"
LABEL = json.dumps({"sessionId": "session_1_abc", "phraseText": "alpha", "duration": 1.5})


def _proxy(recorder, archive=None, transcoder=None, **config) -> CollectionProxy:
    config.setdefault("target_url", TARGET)
    return CollectionProxy(
        ProxyConfig(**config),
        transcoder=transcoder or FakeTranscoder(),
        archive=archive,
        transport=recorder.transport,
    )


def _timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


@pytest.mark.asyncio
async def test_accepted_format_is_forwarded_unchanged() -> None:
    recorder = RecordingTransport(lambda request: httpx.Response(200, json={"status": "stored"}))
    transcoder = FakeTranscoder()

    outcome = await _proxy(recorder, transcoder=transcoder).forward(
        WAV_BYTES, "audio/wav", LABEL, filename="recording_session_1_abc_0.wav"
    )

    assert outcome == Delivered(remote_status=200, remote_body={"status": "stored"})
    assert transcoder.calls == []
    request = recorder.requests[0]
    assert str(request.url) == TARGET
    assert b'filename="recording_session_1_abc_0.wav"' in request.content
    assert WAV_BYTES in request.content


@pytest.mark.parametrize(
    ("filename", "content_type", "accepted"),
    [
        ("take.MP3", "application/octet-stream", True),
        ("take.flac", None, True),
        ("take.bin", "audio/x-wav", True),
        ("take.webm", "audio/webm;codecs=opus", False),
        (None, "audio/ogg", False),
    ],
)
def test_accepted_format_by_extension_or_mime(filename, content_type, accepted) -> None:
    proxy = _proxy(RecordingTransport(lambda request: httpx.Response(200)))

    assert proxy.is_accepted_format(filename, content_type) is accepted


@pytest.mark.asyncio
async def test_other_formats_are_converted_to_mp3() -> None:
    recorder = RecordingTransport(lambda request: httpx.Response(200, json={"status": "stored"}))
    transcoder = FakeTranscoder()

    outcome = await _proxy(recorder, transcoder=transcoder).forward(
        b"webm-bytes", "audio/webm", LABEL, filename="recording_session_1_abc_0.webm"
    )

    assert isinstance(outcome, Delivered)
    assert transcoder.calls == ["recording_session_1_abc_0.webm"]
    body = recorder.requests[0].content
    assert b'filename="recording_session_1_abc_0.mp3"' in body
    assert b"Content-Type: audio/mpeg" in body


@pytest.mark.asyncio
async def test_conversion_failure_is_a_failed_delivery() -> None:
    recorder = RecordingTransport(lambda request: httpx.Response(200))
    transcoder = FakeTranscoder(error=TranscodeError("ffmpeg binary not found: ffmpeg"))

    outcome = await _proxy(recorder, transcoder=transcoder).forward(b"webm", "audio/webm", LABEL)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, TranscodeError)
    assert "Audio conversion failed" in str(outcome.error)
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_timeout_degrades_and_archives_the_take(archive) -> None:
    recorder = RecordingTransport(_timeout)

    outcome = await _proxy(recorder, archive=archive).forward(
        WAV_BYTES, "audio/wav", LABEL, filename="take.wav"
    )

    assert isinstance(outcome, AcceptedLocally)
    assert "timed out" in outcome.reason
    pending = await archive.pending()
    assert [record.filename for record in pending] == [outcome.local_file]
    assert pending[0].status == STATUS_PENDING
    assert pending[0].metadata["sessionId"] == "session_1_abc"


@pytest.mark.asyncio
async def test_hung_remote_is_cut_off_by_the_proxy_timeout(archive) -> None:
    async def hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    recorder = RecordingTransport(hang)

    outcome = await _proxy(recorder, archive=archive, timeout_ms=50).forward(WAV_BYTES, "audio/wav", LABEL)

    assert isinstance(outcome, AcceptedLocally)


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [502, 503, 504])
async def test_gateway_failures_degrade(status_code, archive) -> None:
    recorder = RecordingTransport(lambda request: httpx.Response(status_code, text="Bad Gateway"))

    outcome = await _proxy(recorder, archive=archive).forward(WAV_BYTES, "audio/wav", LABEL)

    assert isinstance(outcome, AcceptedLocally)
    assert str(status_code) in outcome.reason


@pytest.mark.asyncio
async def test_connection_failure_degrades_without_archive() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    outcome = await _proxy(RecordingTransport(refuse)).forward(WAV_BYTES, "audio/wav", LABEL)

    assert isinstance(outcome, AcceptedLocally)
    assert outcome.local_file is None


@pytest.mark.asyncio
async def test_timeout_without_degradation_is_a_504(archive) -> None:
    recorder = RecordingTransport(_timeout)

    outcome = await _proxy(recorder, archive=archive, degrade_on_unavailable=False).forward(
        WAV_BYTES, "audio/wav", LABEL
    )

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, RemoteUnavailableError)
    assert outcome.error.status_code == 504
    assert await archive.pending() == []


@pytest.mark.asyncio
async def test_remote_rejection_and_server_errors_are_not_degraded(archive) -> None:
    rejected = await _proxy(
        RecordingTransport(lambda request: httpx.Response(422, json={"error": "bad label"})), archive=archive
    ).forward(WAV_BYTES, "audio/wav", LABEL)
    crashed = await _proxy(
        RecordingTransport(lambda request: httpx.Response(500, json={"error": "boom"})), archive=archive
    ).forward(WAV_BYTES, "audio/wav", LABEL)

    assert isinstance(rejected, Failed) and isinstance(rejected.error, RemoteRejectedError)
    assert rejected.error.body == {"error": "bad label"}
    assert isinstance(crashed, Failed) and isinstance(crashed.error, RemoteServerError)
    assert await archive.pending() == []


@pytest.mark.asyncio
async def test_malformed_requests_raise() -> None:
    proxy = _proxy(RecordingTransport(lambda request: httpx.Response(200)), max_upload_bytes=16)

    with pytest.raises(ProxyRequestError) as empty:
        await proxy.forward(b"", "audio/wav", LABEL)
    with pytest.raises(ProxyRequestError) as too_large:
        await proxy.forward(b"x" * 17, "audio/wav", LABEL)

    assert empty.value.status_code == 400
    assert too_large.value.status_code == 413


@pytest.mark.asyncio
async def test_resubmit_delivers_pending_takes(archive) -> None:
    down = _proxy(RecordingTransport(_timeout), archive=archive)
    await down.forward(WAV_BYTES, "audio/wav", LABEL, filename="first.wav")
    await down.forward(WAV_BYTES, "audio/wav", LABEL, filename="second.wav")

    recorder = RecordingTransport(lambda request: httpx.Response(200, json={"status": "stored"}))
    report = await _proxy(recorder, archive=archive).resubmit_pending()

    assert report.attempted == 2
    assert report.delivered == 2
    assert report.still_pending == 0
    assert await archive.pending() == []
    statuses = {record.status for record in await archive.list_recordings()}
    assert statuses == {STATUS_DELIVERED}
    assert any(b'filename="first.wav"' in request.content for request in recorder.requests)


@pytest.mark.asyncio
async def test_resubmit_leaves_takes_pending_while_remote_is_down(archive) -> None:
    proxy = _proxy(RecordingTransport(_timeout), archive=archive)
    await proxy.forward(WAV_BYTES, "audio/wav", LABEL)

    report = await proxy.resubmit_pending()

    assert report.attempted == 1
    assert report.delivered == 0
    assert len(await archive.pending()) == 1
