"""Liveness probe."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter

from voice_collect.views import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])

_STARTED_AT = time.monotonic()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - _STARTED_AT, 3),
    )
