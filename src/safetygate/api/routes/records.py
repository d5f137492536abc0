"""
Records API -- submit inputs, read decisions, set clinician overrides.

  POST /api/v1/intakes                            -- Store + evaluate an intake (safety rules)
  POST /api/v1/reports/validate                   -- Store + validate a report job (content rules)
  GET  /api/v1/records/{record_id}                -- Computed AND effective result, side by side
  POST /api/v1/records/{record_id}/policy-override -- Set override {level, reason}
  GET  /api/v1/records/{record_id}/overrides      -- Append-only override audit trail

A record read whose evaluation could not be completed returns 200 with
evaluation_state="failed" and the error code, so it is never shown as a
clean pass.
"""

import logging

from fastapi import APIRouter, Depends, Request

from ...engine.severity import RuleKind
from ..middleware.auth import AuthContext, verify_api_key
from ..models.requests import IntakeRequest, OverrideRequest, ReportRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/intakes", status_code=201)
def submit_intake(
    body: IntakeRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    data = body.model_dump(exclude={"id"})
    view = request.app.state.service.submit_record(body.id, RuleKind.INTAKE_SAFETY, data)
    return view.to_dict()


@router.post("/reports/validate", status_code=201)
def validate_report(
    body: ReportRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    data = body.model_dump(exclude={"job_id"})
    view = request.app.state.service.submit_record(body.job_id, RuleKind.CONTENT_VALIDATION, data)
    return view.to_dict()


@router.get("/records/{record_id}")
def read_record(record_id: str, request: Request, auth: AuthContext = Depends(verify_api_key)) -> dict:
    return request.app.state.service.read_record(record_id).to_dict()


@router.post("/records/{record_id}/policy-override")
def set_override(
    record_id: str,
    body: OverrideRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    view = request.app.state.service.set_override(record_id, body.level, body.reason, auth.actor)
    return view.to_dict()


@router.get("/records/{record_id}/overrides")
def override_history(record_id: str, request: Request, auth: AuthContext = Depends(verify_api_key)) -> dict:
    entries = request.app.state.service.override_history(record_id)
    return {"overrides": [e.to_dict() for e in entries], "total": len(entries)}
