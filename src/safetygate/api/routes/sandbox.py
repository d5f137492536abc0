"""
Sandbox API -- preview a rule against free text without persisting anything.

  POST /api/v1/sandbox/evaluate -- {input_text, rule_version_id? | logic?} -> triggered rules + level

No override is read and no audit record is written.
"""

import logging

from fastapi import APIRouter, Depends, Request

from ..middleware.auth import AuthContext, verify_api_key
from ..models.requests import SandboxRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sandbox/evaluate")
def evaluate_sandbox(
    body: SandboxRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    result = request.app.state.service.sandbox(
        body.input_text,
        kind=body.kind,
        rule_version_id=body.rule_version_id,
        logic=body.logic,
        level=body.level,
        structured_data=body.structured_data,
        signals=body.signals,
        scores=body.scores,
    )
    return result.to_dict()
