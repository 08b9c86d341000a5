"""Schemas returned by the collection proxy."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AcceptedLocallyResponse(BaseModel):
    """Success-shaped answer used when the remote collection service is unreachable."""

    success: bool = True
    outcome: Literal["accepted_locally"] = "accepted_locally"
    message: str = "Recording saved locally (collection service unavailable)"
    reason: str
    local_file: Optional[str] = Field(default=None, alias="localFile")

    model_config = ConfigDict(populate_by_name=True)


class ResubmitResponse(BaseModel):
    attempted: int
    delivered: int
    still_pending: int = Field(alias="stillPending")
    failed: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)
