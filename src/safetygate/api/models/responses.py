"""
Pydantic response models -- shapes the gateway returns besides engine dicts.
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str = "0.1.0"
    uptime_seconds: float = 0.0


class ReadinessResponse(BaseModel):
    """Readiness: database reachable and each rule kind has active rules."""

    ready: bool = True
    checks: dict = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response. ``error`` is the engine error code."""

    error: str
    detail: str = ""
    status_code: int = 500
