"""Pydantic models for API request/response contracts."""
from .requests import (
    ActivateRequest,
    CreateDraftRequest,
    CreateRuleRequest,
    IntakeRequest,
    OverrideRequest,
    ReportRequest,
    SandboxRequest,
    UpdateDraftRequest,
)
from .responses import (
    ErrorResponse,
    HealthResponse,
    ReadinessResponse,
)
