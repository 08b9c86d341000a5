"""Settings classes and the process-wide settings factory."""

from .settings import Settings, get_settings, validate_settings

__all__ = ["Settings", "get_settings", "validate_settings"]
