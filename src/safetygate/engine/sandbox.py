"""
Sandbox Runner -- dry-run the pipeline for rule authors.

Runs evaluate -> sanitize -> aggregate against free text and a caller-chosen
rule (any status, usually a draft) or inline logic. Reads no override,
writes nothing, emits no audit record.

The text becomes a single chat message (intake rules) or a single report
section (content rules), both with id "sandbox".

Usage:
    result = run_sandbox(
        "Seit 30 Minuten Brustschmerz",
        [draft_version],
        structured_data={"history_of_present_illness": {"duration": "30 Minuten"}},
    )
    result.escalation_level  # "A"
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ..errors import RuleValidationError
from ..validators import validate_not_empty
from .logic import dump_logic, parse_logic
from .models import RuleDefaults, RuleStatus, RuleVersion, TriggeredFinding
from .pipeline import Decision, decide
from .severity import RuleKind, scale_for_kind
from .subjects import ChatMessage, IntakeSubject, ReportSection, ReportSubject

logger = logging.getLogger(__name__)

SANDBOX_ID = "sandbox"
INLINE_RULE_KEY = "inline"


@dataclass
class SandboxResult:
    triggered_findings: list[TriggeredFinding] = field(default_factory=list)
    escalation_level: str | None = None
    status: str = ""
    decision: Decision | None = None

    def to_dict(self) -> dict:
        data = self.decision.to_dict()
        data["triggered_rules"] = data.pop("findings")
        data["escalation_level"] = self.escalation_level
        data["status"] = self.status
        return data


def build_subject(
    kind: str,
    input_text: str,
    structured_data: dict | None = None,
    signals: list[str] | None = None,
    scores: dict | None = None,
):
    if kind == RuleKind.CONTENT_VALIDATION:
        return ReportSubject(
            job_id=SANDBOX_ID,
            sections=[ReportSection(
                section_key=SANDBOX_ID,
                draft=input_text,
                signals=tuple(signals or ()),
                scores=dict(scores or {}),
            )],
        )
    return IntakeSubject(
        intake_id=SANDBOX_ID,
        structured_data=dict(structured_data or {}),
        chat_messages=[ChatMessage(id=SANDBOX_ID, content=input_text)],
        intake_signals=list(signals or []),
    )


def inline_rule(logic: dict, level: str, kind: str = RuleKind.INTAKE_SAFETY, action: str | None = None) -> RuleVersion:
    """A transient draft version for logic that was never stored."""
    matcher = parse_logic(logic)
    if not scale_for_kind(kind).contains(level):
        raise RuleValidationError(f"level {level!r} is not on the {kind} scale")
    return RuleVersion(
        id=INLINE_RULE_KEY,
        rule_id=INLINE_RULE_KEY,
        version=0,
        status=RuleStatus.DRAFT,
        logic=dump_logic(matcher),
        defaults=RuleDefaults(level_default=level, action_default=action),
        change_reason="sandbox",
        created_by="sandbox",
        created_at="",
        rule_key=INLINE_RULE_KEY,
        title="Inline rule",
        kind=kind,
    )


def run_sandbox(
    input_text: str,
    rules: Sequence[RuleVersion],
    structured_data: dict | None = None,
    signals: list[str] | None = None,
    scores: dict | None = None,
) -> SandboxResult:
    """Evaluate ``rules`` against the text. Raises NoRulesAvailableError when none can run."""
    validate_not_empty(input_text, "input_text")
    for rule in rules:
        if rule.logic is None:
            raise RuleValidationError(f"Rule {rule.rule_key} v{rule.version} has no logic yet")

    kind = rules[0].kind if rules else RuleKind.INTAKE_SAFETY
    subject = build_subject(kind, input_text, structured_data, signals, scores)
    decision = decide(rules, subject, kind=kind)

    logger.info(
        f"[Sandbox] {len(rules)} rules -> {len(decision.findings)} findings, "
        f"level={decision.policy_result.escalation_level}"
    )
    return SandboxResult(
        triggered_findings=decision.findings,
        escalation_level=decision.policy_result.escalation_level,
        status=decision.policy_result.status,
        decision=decision,
    )
