"""
Pydantic request models -- the HTTP contract for rule authors and clinicians.

Reasons are plain strings with no length constraint here: a blank
change_reason or override reason is rejected by the engine with its own
error code (VALIDATION_ERROR / OVERRIDE_REASON_REQUIRED), not by pydantic.
"""

from pydantic import BaseModel, Field

from ...engine.severity import RuleKind

KIND_DESCRIPTION = "intake_safety or content_validation"


# =============================================================================
# RULE LIFECYCLE
# =============================================================================


class RuleDefaultsBody(BaseModel):
    level_default: str = Field(..., description="A/B/C or critical/warning/info")
    action_default: str | None = Field(None, description="block, escalate, review, inform")


class CreateRuleRequest(BaseModel):
    key: str = Field(..., description="Stable rule key, e.g. CHEST_PAIN")
    title: str
    kind: str = Field(RuleKind.INTAKE_SAFETY, description=KIND_DESCRIPTION)
    change_reason: str = ""
    logic: dict | None = Field(None, description="Matcher JSON (keyword, co_occurrence, ...)")
    defaults: RuleDefaultsBody | None = None


class CreateDraftRequest(BaseModel):
    change_reason: str = ""


class UpdateDraftRequest(BaseModel):
    logic: dict | None = None
    defaults: RuleDefaultsBody | None = None


class ActivateRequest(BaseModel):
    change_reason: str = ""
    expected_revision: int | None = Field(
        None,
        description="Rule active_revision last seen (default: the revision the draft "
        "was created from); mismatch -> 409 conflict",
    )


# =============================================================================
# SANDBOX
# =============================================================================


class SandboxRequest(BaseModel):
    input_text: str
    kind: str = Field(RuleKind.INTAKE_SAFETY, description=KIND_DESCRIPTION)
    rule_version_id: str | None = Field(None, description="Any status; omit to use the active set")
    logic: dict | None = Field(None, description="Inline logic instead of a stored version")
    level: str | None = Field(None, description="Severity for inline logic")
    structured_data: dict | None = None
    signals: list[str] = Field(default_factory=list)
    scores: dict = Field(default_factory=dict)


# =============================================================================
# RECORDS
# =============================================================================


class ChatMessageBody(BaseModel):
    id: str
    content: str


class IntakeRequest(BaseModel):
    id: str = Field(..., description="Intake record id")
    structured_data: dict = Field(default_factory=dict)
    chat_messages: list[ChatMessageBody] = Field(default_factory=list)
    signals: list[str] = Field(default_factory=list)


class ReportSectionBody(BaseModel):
    section_key: str
    draft: str = ""
    signals: list[str] = Field(default_factory=list)
    scores: dict = Field(default_factory=dict)


class ReportRequest(BaseModel):
    job_id: str
    sections: list[ReportSectionBody] = Field(default_factory=list)


class OverrideRequest(BaseModel):
    level: str
    reason: str = ""
