"""Resumable session snapshots and lifetime counters.

Snapshots are plain JSON strings kept in a key-value backend. `SessionStore`
adds the freshness rule on top: a snapshot older than the configured maximum
age (24 hours by default) is discarded and the caller starts a new session.
Anything that goes wrong while reading or writing is logged and treated as
"no snapshot"; persistence problems never block a participant from recording.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from voice_collect.database import Database
from voice_collect.domain.models import Session
from voice_collect.models import SessionSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=24)
SESSION_KEY = "session"
COMPLETED_COUNT_KEY = "completedRecordingsCount"
THANK_YOU_SEEN_KEY = "hasSeenThankYouModal"


class SnapshotBackendError(RuntimeError):
    """Raised when the underlying key-value storage fails."""


class SnapshotBackend(ABC):
    """Key-value contract used for snapshots and counters"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class MemorySnapshotBackend(SnapshotBackend):
    """Process-local backend; one dict per instance."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def put(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._values)


class SqlSnapshotBackend(SnapshotBackend):
    """Backend storing each key as a row of ``session_snapshots``."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get(self, key: str) -> Optional[str]:
        try:
            async with self._database.session_scope() as session:
                result = await session.execute(
                    select(SessionSnapshot.payload).where(SessionSnapshot.key == key)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise SnapshotBackendError(f"Failed to read snapshot {key!r}: {exc}") from exc

    async def put(self, key: str, value: str) -> None:
        try:
            async with self._database.session_scope() as session:
                existing = await session.get(SessionSnapshot, key)
                if existing is None:
                    session.add(SessionSnapshot(key=key, payload=value))
                else:
                    existing.payload = value
                await session.commit()
        except SQLAlchemyError as exc:
            raise SnapshotBackendError(f"Failed to write snapshot {key!r}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            async with self._database.session_scope() as session:
                await session.execute(delete(SessionSnapshot).where(SessionSnapshot.key == key))
                await session.commit()
        except SQLAlchemyError as exc:
            raise SnapshotBackendError(f"Failed to delete snapshot {key!r}: {exc}") from exc


class SessionStore:
    """Save, restore and clear time-bounded session snapshots."""

    def __init__(
        self,
        backend: SnapshotBackend,
        *,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._max_age_ms = max_age.total_seconds() * 1000
        self._clock = clock

    @property
    def backend(self) -> SnapshotBackend:
        return self._backend

    def _now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    async def save(self, key: str, session: Session) -> None:
        """Overwrite the snapshot under ``key`` with the current session state."""

        try:
            payload = json.dumps(
                {"session": session.to_snapshot(), "timestamp": self._now_ms()},
                separators=(",", ":"),
            )
            await self._backend.put(key, payload)
        except (SnapshotBackendError, TypeError, ValueError) as exc:
            logger.error("Error saving session %s: %s", key, exc)

    async def load(self, key: str) -> Optional[Session]:
        """Return the stored session if it is younger than the maximum age."""

        try:
            raw = await self._backend.get(key)
        except SnapshotBackendError as exc:
            logger.error("Error loading session %s: %s", key, exc)
            return None
        if raw is None:
            return None

        try:
            data: Any = json.loads(raw)
            timestamp = int(data["timestamp"])
            session = Session.model_validate(data["session"])
        except (TypeError, ValueError, KeyError) as exc:
            logger.error("Error loading session %s: %s", key, exc)
            return None

        age_ms = self._now_ms() - timestamp
        if age_ms >= self._max_age_ms:
            logger.info("Discarding stale session snapshot %s (age %.0f s)", key, age_ms / 1000)
            await self.clear(key)
            return None
        return session

    async def clear(self, key: str) -> None:
        try:
            await self._backend.delete(key)
        except SnapshotBackendError as exc:
            logger.error("Error clearing session %s: %s", key, exc)


class MilestoneTracker:
    """Lifetime submission counter gating the one-time thank-you acknowledgement."""

    def __init__(self, backend: SnapshotBackend, *, prefix: str, threshold: int) -> None:
        self._backend = backend
        self._count_key = f"{prefix}{COMPLETED_COUNT_KEY}"
        self._seen_key = f"{prefix}{THANK_YOU_SEEN_KEY}"
        self._threshold = threshold

    async def count(self) -> int:
        try:
            raw = await self._backend.get(self._count_key)
        except SnapshotBackendError as exc:
            logger.error("Error reading submission counter: %s", exc)
            return 0
        try:
            return int(raw) if raw is not None else 0
        except ValueError:
            logger.warning("Corrupt submission counter %r; resetting", raw)
            return 0

    async def record_submission(self) -> tuple[int, bool]:
        """Increment the counter; report whether the thank-you is due now."""

        count = await self.count() + 1
        try:
            await self._backend.put(self._count_key, str(count))
            if self._threshold <= 0 or count < self._threshold:
                return count, False
            if await self._backend.get(self._seen_key) == "true":
                return count, False
            await self._backend.put(self._seen_key, "true")
        except SnapshotBackendError as exc:
            logger.error("Error updating submission counter: %s", exc)
            return count, False
        return count, True


__all__ = [
    "DEFAULT_MAX_AGE",
    "MemorySnapshotBackend",
    "MilestoneTracker",
    "SESSION_KEY",
    "SessionStore",
    "SnapshotBackend",
    "SnapshotBackendError",
    "SqlSnapshotBackend",
]
