"""Tests for session snapshots, their freshness window and the milestone counter."""

from __future__ import annotations

import json

import pytest

from voice_collect.config.settings import DatabaseConfig
from voice_collect.database import Database
from voice_collect.domain.models import CompletedTake, Session, SkippedPhrase
from voice_collect.services.session_store import (
    MemorySnapshotBackend,
    MilestoneTracker,
    SessionStore,
    SnapshotBackend,
    SnapshotBackendError,
    SqlSnapshotBackend,
)

DAY_SECONDS = 24 * 60 * 60


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenBackend(SnapshotBackend):
    async def get(self, key):
        raise SnapshotBackendError("disk unavailable")

    async def put(self, key, value):
        raise SnapshotBackendError("disk unavailable")

    async def delete(self, key):
        raise SnapshotBackendError("disk unavailable")


def _session_in_progress() -> Session:
    session = Session.new([2, 0, 1], started_at=1_699_999_000_000)
    session.completed_takes.append(
        CompletedTake(phrase_index=2, phrase_text="charlie", timestamp=1_699_999_100_000, duration=2.5)
    )
    session.skipped_phrases.append(
        SkippedPhrase(phrase_index=0, phrase_text="alpha", timestamp=1_699_999_200_000)
    )
    session.current_index = 2
    return session


@pytest.mark.asyncio
async def test_snapshot_round_trip_within_window() -> None:
    clock = Clock()
    store = SessionStore(MemorySnapshotBackend(), clock=clock)
    session = _session_in_progress()

    await store.save("voice_research_session", session)
    clock.now += DAY_SECONDS - 0.001
    restored = await store.load("voice_research_session")

    assert restored is not None
    assert restored.session_id == session.session_id
    assert restored.phrase_order == [2, 0, 1]
    assert restored.current_index == 2
    assert restored.completed_takes == session.completed_takes
    assert restored.skipped_phrases == session.skipped_phrases


@pytest.mark.asyncio
async def test_snapshot_older_than_a_day_is_discarded() -> None:
    clock = Clock()
    backend = MemorySnapshotBackend()
    store = SessionStore(backend, clock=clock)

    await store.save("voice_research_session", _session_in_progress())
    clock.now += DAY_SECONDS + 0.001

    assert await store.load("voice_research_session") is None
    assert backend.keys() == []


@pytest.mark.asyncio
async def test_snapshot_uses_camel_case_keys() -> None:
    backend = MemorySnapshotBackend()
    store = SessionStore(backend, clock=Clock())

    await store.save("k", _session_in_progress())
    payload = json.loads(await backend.get("k"))

    assert set(payload) == {"session", "timestamp"}
    assert payload["session"]["currentIndex"] == 2
    assert payload["session"]["completedTakes"][0]["phraseIndex"] == 2


@pytest.mark.asyncio
async def test_corrupt_snapshot_is_treated_as_missing() -> None:
    backend = MemorySnapshotBackend()
    store = SessionStore(backend)
    await backend.put("k", "{not json")

    assert await store.load("k") is None


@pytest.mark.asyncio
async def test_backend_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    store = SessionStore(BrokenBackend())

    await store.save("k", _session_in_progress())
    assert await store.load("k") is None
    await store.clear("k")

    assert "Error saving session" in caplog.text
    assert "Error loading session" in caplog.text


@pytest.mark.asyncio
async def test_thank_you_is_due_once_at_threshold() -> None:
    tracker = MilestoneTracker(MemorySnapshotBackend(), prefix="voice_research_", threshold=3)

    results = [await tracker.record_submission() for _ in range(5)]

    assert results == [(1, False), (2, False), (3, True), (4, False), (5, False)]
    assert await tracker.count() == 5


@pytest.mark.asyncio
async def test_sql_backend_persists_snapshots(tmp_path) -> None:
    database = Database(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'snapshots.db'}"))
    await database.init_models()
    backend = SqlSnapshotBackend(database)
    try:
        assert await backend.get("k") is None
        await backend.put("k", "first")
        await backend.put("k", "second")
        assert await backend.get("k") == "second"

        store = SessionStore(backend)
        await store.save("session", _session_in_progress())
        restored = await store.load("session")
        assert restored is not None and restored.current_index == 2

        await backend.delete("k")
        assert await backend.get("k") is None
    finally:
        await database.dispose()
