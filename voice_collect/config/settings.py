import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from voice_collect.domain.errors import FatalConfigError

logger = logging.getLogger(__name__)

DEFAULT_PHRASES_FILE = Path(__file__).resolve().parents[1] / "resources" / "phrases.json"


class ApiConfig(BaseSettings):
    """Client-side upload configuration"""

    endpoint: str = "http://localhost:8000/api/proxy"
    auth_token: Optional[SecretStr] = None
    timeout_ms: int = Field(default=30000, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=2000, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class ProxyConfig(BaseSettings):
    """Server-side forwarding to the remote collection service"""

    target_url: str = "http://159.65.185.102/collect"
    timeout_ms: int = Field(
        default=10000,
        ge=1,
        description="Kept below the client timeout to fit platform execution limits.",
    )
    degrade_on_unavailable: bool = Field(
        default=True,
        description="Answer 200 'accepted locally' when the remote service is unreachable.",
    )
    accepted_formats: tuple[str, ...] = ("mp3", "wav", "flac")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class RecordingConfig(BaseSettings):
    """Recording constraints shared by capture and validation"""

    max_duration: float = 15.0
    min_duration: float = 0.5
    mime_type: str = "audio/wav"
    sample_rate: int = 16000
    audio_bits_per_second: int = 128000

    model_config = SettingsConfigDict(
        env_prefix="RECORDING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class TranscodeConfig(BaseSettings):
    """ffmpeg parameters used when the remote service rejects a format"""

    ffmpeg_binary: str = "ffmpeg"
    sample_rate: int = 16000
    channels: int = 1
    bitrate: str = "128k"

    model_config = SettingsConfigDict(
        env_prefix="TRANSCODE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class SessionConfig(BaseSettings):
    """Session snapshot configuration"""

    enable_local_storage: bool = True
    storage_prefix: str = "voice_research_"
    snapshot_max_age_hours: float = Field(default=24.0, gt=0)
    collect_demographics: bool = False

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class UiConfig(BaseSettings):
    """Flow options for the recording session"""

    enable_practice_mode: bool = True
    allow_skip: bool = True
    break_after_recordings: int = Field(default=10, ge=0)
    thank_you_after: int = Field(default=3, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="UI_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class MetadataConfig(BaseSettings):
    """Fields stamped on every uploaded label"""

    project_id: str = "voice_research_2024"
    app_version: str = "1.0.0"
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    model_config = SettingsConfigDict(
        env_prefix="METADATA_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class StorageConfig(BaseSettings):
    """Local recording archive and optional S3 mirror"""

    uploads_dir: str = "uploads"
    s3_bucket: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_prefix: str = "recordings"
    access_key: Optional[str] = None
    secret_key: Optional[SecretStr] = None

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class DatabaseConfig(BaseSettings):
    """Database configuration for session snapshots"""

    url: str = "sqlite+aiosqlite:///./data/voice_collect.db"
    echo: bool = False

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Voice Collect"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    upload_log_file: str = "logs/upload_pipeline.log"
    phrases_file: Path = DEFAULT_PHRASES_FILE

    api: ApiConfig = Field(default_factory=ApiConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    recording: RecordingConfig = Field(default_factory=RecordingConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    ui: UiConfig = Field(default_factory=UiConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = False
    cors_allow_methods: list[str] = ["GET", "POST", "DELETE", "OPTIONS"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


def validate_settings(settings: Settings, phrases: list[str] | None = None) -> None:
    """Reject configurations the recorder cannot honour and warn about weak ones."""

    if settings.recording.max_duration < settings.recording.min_duration:
        logger.error(
            "maxDuration (%s) must be greater than minDuration (%s)",
            settings.recording.max_duration,
            settings.recording.min_duration,
        )
        raise FatalConfigError(
            "recording.max_duration must be greater than or equal to recording.min_duration"
        )

    if phrases is not None and not phrases:
        logger.warning("No phrases configured; sessions will complete immediately.")

    endpoint = settings.api.endpoint.strip()
    if not endpoint or "your-api-endpoint" in endpoint:
        logger.warning("API endpoint not configured; uploads will fail until it is set.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the process-wide settings once; callers pass it down explicitly."""

    return Settings()


__all__ = [
    "ApiConfig",
    "DatabaseConfig",
    "MetadataConfig",
    "ProxyConfig",
    "RecordingConfig",
    "SessionConfig",
    "Settings",
    "StorageConfig",
    "TranscodeConfig",
    "UiConfig",
    "get_settings",
    "validate_settings",
]
