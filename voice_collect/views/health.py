"""Schema for the health probe."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
