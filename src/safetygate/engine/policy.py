"""
Policy Aggregator -- validated findings -> one PolicyResult.

Worst severity wins. Every rule that fired stays in triggered_rule_ids and
every rule at the decisive level stays in contributing_rule_ids; ties are
never truncated to a single winner.

Fail-closed:
  - empty rule set, or every rule inconclusive -> NoRulesAvailableError
  - some rules inconclusive -> result is marked incomplete, and a result
    that would otherwise pass is raised to FLAG

Contradictions: a finding the input also denies keeps the result at no
less than the middle level (B, warning); the denied findings contribute.
"""

import logging
import uuid

from ..errors import NoRulesAvailableError
from .models import Evaluation, PolicyResult, TriggeredFinding, ValidationFlag
from .severity import EscalationLevel, RuleKind, ValidationStatus, scale_for_kind

logger = logging.getLogger(__name__)

# Namespace for deterministic ValidationFlag ids
FLAG_NAMESPACE = uuid.UUID("6f0e3c1a-8d7b-5e2f-9a41-3b5c7d9e1f20")

# Asked back to the patient when only level C fired
SAFETY_QUESTIONS_LEVEL_C = (
    "Haben Sie aktuell Brustschmerzen oder Druck in der Brust?",
    "Gab es Ohnmacht, starke Benommenheit oder Bewusstseinsverlust?",
    "Haben Sie Gedanken, sich selbst etwas anzutun?",
)


def _unique(values) -> tuple[str, ...]:
    out: list[str] = []
    for value in values:
        if value not in out:
            out.append(value)
    return tuple(out)


def aggregate(
    evaluation: Evaluation,
    findings: list[TriggeredFinding] | None = None,
) -> PolicyResult:
    """Reduce findings to a single decision.

    ``findings`` are the sanitized findings; defaults to the evaluation's own.
    """
    if evaluation.rules_evaluated == 0:
        raise NoRulesAvailableError("No active rules available; refusing to decide")
    if len(evaluation.inconclusive) >= evaluation.rules_evaluated:
        raise NoRulesAvailableError(
            f"All {evaluation.rules_evaluated} rules failed to load or evaluate"
        )

    if findings is None:
        findings = evaluation.findings
    scale = scale_for_kind(evaluation.kind)

    worst = scale.worst(f.severity for f in findings)
    contributing = [f for f in findings if worst is not None and f.severity == worst]
    contradicted = [f for f in findings if f.contradicted]
    floor = scale.levels[1]
    if contradicted and scale.rank(worst) < scale.rank(floor):
        logger.info(
            f"[Policy] {worst or 'none'} raised to {floor}: "
            f"{[f.rule_id for f in contradicted]} contradicted by the input"
        )
        worst = floor
        contributing = contradicted
    inconclusive_ids = _unique(r.rule_id for r in evaluation.inconclusive)

    status = scale.status_for(worst)
    if status == ValidationStatus.PASS and inconclusive_ids:
        status = ValidationStatus.FLAG

    result = PolicyResult(
        kind=evaluation.kind,
        escalation_level=worst,
        triggered_rule_ids=_unique(f.rule_id for f in findings),
        contributing_rule_ids=_unique(f.rule_id for f in contributing),
        inconclusive_rule_ids=inconclusive_ids,
        verified=any(f.verified for f in contributing),
        hard_stop=worst == scale.highest,
        status=status,
        policy_version=evaluation.policy_version,
        contradictions_present=bool(contradicted),
    )

    if result.hard_stop and not result.verified:
        logger.warning(
            f"[Policy] Hard stop {worst} from {list(result.contributing_rule_ids)} "
            f"has no verified evidence"
        )
    return result


def validation_flags(record_id: str, findings: list[TriggeredFinding]) -> list[ValidationFlag]:
    """Content-validation view of findings. Same input, same flag ids."""
    return [
        ValidationFlag(
            flag_id=str(uuid.uuid5(
                FLAG_NAMESPACE,
                f"{record_id}:{f.rule_id}:{f.rule_version}:{f.section_key or ''}",
            )),
            rule_id=f.rule_id,
            rule_version=f.rule_version,
            section_key=f.section_key,
            severity=f.severity,
            reason=f.short_reason,
            verified=f.verified,
        )
        for f in findings
    ]


def summary_line(result: PolicyResult) -> str:
    """One line for the clinician dashboard.

    Intake:   "Red Flags: Level A (SEVERE_DYSPNEA)."  /  "Red Flags: keine."
    Content:  "Validation: FAIL (plausibility-contradictory-risk-level)."
    """
    rules = ", ".join(result.contributing_rule_ids)
    suffix = " Evaluation incomplete." if not result.complete else ""
    if result.kind == RuleKind.INTAKE_SAFETY:
        if result.escalation_level is None:
            return f"Red Flags: keine.{suffix}"
        line = f"Red Flags: Level {result.escalation_level} ({rules}).{suffix}"
        if result.escalation_level == EscalationLevel.C:
            line += f" Offene Sicherheitsfragen: {' '.join(SAFETY_QUESTIONS_LEVEL_C)}"
        return line
    if result.escalation_level is None or not rules:
        return f"Validation: {result.status.upper()}.{suffix}"
    return f"Validation: {result.status.upper()} ({rules}).{suffix}"
