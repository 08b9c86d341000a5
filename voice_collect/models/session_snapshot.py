"""Key-value table holding serialized session snapshots."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionSnapshot(Base):
    """One JSON payload per storage key (last write wins)."""

    __tablename__ = "session_snapshots"

    key = Column(String(255), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


__all__ = ["SessionSnapshot"]
