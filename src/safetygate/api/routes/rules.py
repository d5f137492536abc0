"""
Rules API -- rule lifecycle for authors.

  GET   /api/v1/rules                               -- List rules with active version (?kind=)
  POST  /api/v1/rules                               -- Create rule + draft v1
  GET   /api/v1/rules/{rule}                        -- One rule (id or key) with active/latest version
  GET   /api/v1/rules/{rule}/versions               -- Full version history, newest first
  POST  /api/v1/rules/{rule}/versions               -- Create next draft (change_reason required)
  GET   /api/v1/rules/{rule}/audit                  -- Lifecycle audit events
  GET   /api/v1/rule-versions/{version_id}          -- One version
  PATCH /api/v1/rule-versions/{version_id}          -- Patch draft logic/defaults
  POST  /api/v1/rule-versions/{version_id}/activate -- Activate draft (change_reason required)

Errors carry the engine error code (see api/gateway.py).
"""

import logging

from fastapi import APIRouter, Depends, Request

from ...store import RuleStore
from ..middleware.auth import AuthContext, verify_api_key
from ..models.requests import ActivateRequest, CreateDraftRequest, CreateRuleRequest, UpdateDraftRequest

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_rules(request: Request) -> RuleStore:
    return request.app.state.service.rules


@router.get("/rules")
def list_rules(
    request: Request,
    kind: str | None = None,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    summaries = _get_rules(request).list_rules(kind)
    return {"rules": [s.to_dict() for s in summaries], "total": len(summaries)}


@router.post("/rules", status_code=201)
def create_rule(
    body: CreateRuleRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    rule, draft = _get_rules(request).create_rule(
        key=body.key,
        title=body.title,
        kind=body.kind,
        actor=auth.actor,
        change_reason=body.change_reason,
        logic=body.logic,
        defaults=body.defaults.model_dump() if body.defaults else None,
    )
    return {"rule": rule.to_dict(), "draft": draft.to_dict()}


@router.get("/rules/{rule_ref}")
def get_rule(rule_ref: str, request: Request, auth: AuthContext = Depends(verify_api_key)) -> dict:
    store = _get_rules(request)
    rule = store.get_rule(rule_ref)
    summary = next(s for s in store.list_rules(rule.kind) if s.definition.id == rule.id)
    return summary.to_dict()


@router.get("/rules/{rule_ref}/versions")
def get_history(rule_ref: str, request: Request, auth: AuthContext = Depends(verify_api_key)) -> dict:
    versions = _get_rules(request).get_history(rule_ref)
    return {"versions": [v.to_dict() for v in versions], "total": len(versions)}


@router.post("/rules/{rule_ref}/versions", status_code=201)
def create_draft(
    rule_ref: str,
    body: CreateDraftRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    draft = _get_rules(request).create_draft(rule_ref, body.change_reason, auth.actor)
    return draft.to_dict()


@router.get("/rules/{rule_ref}/audit")
def get_audit(rule_ref: str, request: Request, auth: AuthContext = Depends(verify_api_key)) -> dict:
    events = _get_rules(request).audit_log(rule_ref)
    return {"events": events, "total": len(events)}


@router.get("/rule-versions/{version_id}")
def get_version(version_id: str, request: Request, auth: AuthContext = Depends(verify_api_key)) -> dict:
    return _get_rules(request).get_version(version_id).to_dict()


@router.patch("/rule-versions/{version_id}")
def update_draft(
    version_id: str,
    body: UpdateDraftRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    version = _get_rules(request).update_draft(
        version_id,
        actor=auth.actor,
        logic=body.logic,
        defaults=body.defaults.model_dump() if body.defaults else None,
    )
    return version.to_dict()


@router.post("/rule-versions/{version_id}/activate")
def activate_version(
    version_id: str,
    body: ActivateRequest,
    request: Request,
    auth: AuthContext = Depends(verify_api_key),
) -> dict:
    version = _get_rules(request).activate(
        version_id,
        change_reason=body.change_reason,
        actor=auth.actor,
        expected_revision=body.expected_revision,
    )
    return version.to_dict()
