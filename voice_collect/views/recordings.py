"""Schemas for the local recording collection endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RecordingSavedResponse(BaseModel):
    success: bool = True
    message: str = "Recording processed successfully"
    recording_id: str = Field(alias="recordingId")
    data: dict[str, Any]

    model_config = ConfigDict(populate_by_name=True)


class RecordingListResponse(BaseModel):
    count: int
    recordings: list[dict[str, Any]]


class RecordingStatsResponse(BaseModel):
    total_recordings: int = Field(alias="totalRecordings")
    total_duration: float = Field(alias="totalDuration")
    total_size_mb: float = Field(alias="totalSizeMb")
    unique_sessions: int = Field(alias="uniqueSessions")
    unique_phrases: int = Field(alias="uniquePhrases")
    average_duration: float = Field(alias="averageDuration")
    pending: int = 0

    model_config = ConfigDict(populate_by_name=True)


class RecordingsDeletedResponse(BaseModel):
    success: bool = True
    deleted: int
