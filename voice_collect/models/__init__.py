"""SQLAlchemy models."""

from .base import Base
from .session_snapshot import SessionSnapshot  # noqa: F401

__all__ = ["Base", "SessionSnapshot"]
