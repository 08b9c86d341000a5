"""Common FastAPI dependencies reused across controllers.

Each collaborator is built once from the process settings and shared by every
request. Tests swap any of them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from voice_collect.config.settings import Settings, get_settings
from voice_collect.database import Database
from voice_collect.services.collection_proxy import CollectionProxy
from voice_collect.services.phrase_deck import load_phrases
from voice_collect.services.session_registry import SessionRegistry
from voice_collect.services.session_store import (
    SessionStore,
    SnapshotBackend,
    SqlSnapshotBackend,
)
from voice_collect.services.storage import RecordingArchive
from voice_collect.services.transcoder import Transcoder
from voice_collect.services.upload_pipeline import UploadOptions, UploadPipeline


@lru_cache(maxsize=1)
def get_phrases() -> tuple[str, ...]:
    return tuple(load_phrases(get_settings().phrases_file))


@lru_cache(maxsize=1)
def get_database() -> Database:
    return Database(get_settings().database)


@lru_cache(maxsize=1)
def get_snapshot_backend() -> SnapshotBackend:
    return SqlSnapshotBackend(get_database())


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    hours = get_settings().session.snapshot_max_age_hours
    return SessionStore(get_snapshot_backend(), max_age=timedelta(hours=hours))


@lru_cache(maxsize=1)
def get_upload_pipeline() -> UploadPipeline:
    return UploadPipeline(UploadOptions.from_config(get_settings().api))


@lru_cache(maxsize=1)
def get_archive() -> RecordingArchive:
    return RecordingArchive(get_settings().storage)


@lru_cache(maxsize=1)
def get_collection_proxy() -> CollectionProxy:
    settings = get_settings()
    return CollectionProxy(
        settings.proxy,
        transcoder=Transcoder(settings.transcode),
        archive=get_archive(),
    )


@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    return SessionRegistry(
        get_settings(),
        get_phrases(),
        get_upload_pipeline(),
        get_snapshot_backend(),
        get_session_store(),
    )


SettingsDep = Annotated[Settings, Depends(get_settings)]
ProxyDep = Annotated[CollectionProxy, Depends(get_collection_proxy)]
ArchiveDep = Annotated[RecordingArchive, Depends(get_archive)]
RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]


__all__ = [
    "ArchiveDep",
    "ProxyDep",
    "RegistryDep",
    "SettingsDep",
    "get_archive",
    "get_collection_proxy",
    "get_database",
    "get_phrases",
    "get_session_registry",
    "get_session_store",
    "get_snapshot_backend",
    "get_upload_pipeline",
]
