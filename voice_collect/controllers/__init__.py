"""FastAPI routers acting as controllers in the MVC architecture."""

from . import health, proxy, recordings, sessions

__all__ = ["health", "proxy", "recordings", "sessions"]
