"""
Rule Evaluation Engine -- (active rule set, subject) -> Evaluation.

Pure and deterministic: no clock, no randomness, no I/O. Identical inputs
produce identical output, including finding order:

  1. findings sorted by rule_id ascending (the rule key)
  2. ties keep rule-set definition order, then section order

Each rule runs on its own. A rule whose logic cannot be loaded or whose
matcher raises is recorded as inconclusive and contributes no finding; the
remaining rules still run.

A rule marked ``fallback`` only reports when no other rule fired. A keyword
finding whose symptom the intake also lists as denied is kept and marked
``contradicted``.

Usage:
    evaluation = evaluate(active_rules, IntakeSubject.from_dict(record))
    for finding in evaluation.findings:
        print(finding.rule_id, finding.severity, finding.short_reason)
"""

import hashlib
import logging
from typing import Sequence

from ..errors import NoRulesAvailableError, RuleValidationError
from .logic import parse_logic
from .matchers import Hit, find_denial, run_matcher
from .models import Evaluation, InconclusiveRule, RuleVersion, TriggeredFinding
from .severity import scale_for_kind
from .subjects import EvaluationSubject

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 280


def ruleset_fingerprint(rules: Sequence[RuleVersion]) -> str:
    """32-hex fingerprint of the exact rule versions an evaluation used."""
    parts = sorted(f"{rule.rule_key}@{rule.version}" for rule in rules)
    return hashlib.sha256("\n".join(parts).encode("utf-8")).hexdigest()[:32]


def _short_reason(rule: RuleVersion, hits: list[Hit], denial: str | None = None) -> str:
    details: list[str] = []
    for hit in hits:
        if hit.detail not in details:
            details.append(hit.detail)
    reason = f"{rule.title}: {details[0]}"
    if len(details) > 1:
        reason += f" (+{len(details) - 1} more)"
    if denial is not None:
        reason += f"; also denied as '{denial}'"
    return reason[:MAX_REASON_LENGTH]


def _check_rule(rule: RuleVersion, kind: str) -> None:
    """Raise RuleValidationError when a stored rule cannot be evaluated."""
    if rule.kind != kind:
        raise RuleValidationError(f"rule kind {rule.kind!r} does not match evaluation kind {kind!r}")
    if rule.logic is None:
        raise RuleValidationError("rule version has no logic")
    if rule.defaults is None:
        raise RuleValidationError("rule version has no defaults")
    if not scale_for_kind(kind).contains(rule.defaults.level_default):
        raise RuleValidationError(f"level {rule.defaults.level_default!r} is not on the {kind} scale")


def _findings_for_rule(
    rule: RuleVersion,
    hits: list[Hit],
    policy_version: str,
    denial: str | None = None,
) -> list[TriggeredFinding]:
    """Group hits by section (intake hits share one group) into findings."""
    groups: dict[str | None, list[Hit]] = {}
    for hit in hits:
        groups.setdefault(hit.section_key, []).append(hit)

    findings = []
    for section_key, group in groups.items():
        evidence = tuple(hit.evidence for hit in group if hit.evidence is not None)
        findings.append(TriggeredFinding(
            rule_id=rule.rule_key,
            title=rule.title,
            severity=rule.defaults.level_default,
            short_reason=_short_reason(rule, group, denial),
            action=rule.defaults.action_default,
            verified=bool(evidence),
            evidence=evidence,
            policy_version=policy_version,
            rule_version=rule.version,
            section_key=section_key,
            contradicted=denial is not None,
        ))
    return findings


def evaluate(
    rules: Sequence[RuleVersion],
    subject: EvaluationSubject,
    kind: str | None = None,
) -> Evaluation:
    """Evaluate every rule against the subject.

    Raises NoRulesAvailableError when the rule set is empty: an engine with
    nothing to check must not produce a decision.
    """
    if not rules:
        raise NoRulesAvailableError("No active rules available for evaluation")

    kind = kind or rules[0].kind
    scale_for_kind(kind)
    policy_version = ruleset_fingerprint(rules)

    findings: list[TriggeredFinding] = []
    fallback: list[TriggeredFinding] = []
    inconclusive: list[InconclusiveRule] = []

    for rule in rules:
        try:
            _check_rule(rule, kind)
            matcher = parse_logic(rule.logic)
            hits = run_matcher(matcher, subject)
            denial = find_denial(matcher, subject) if hits else None
        except Exception as e:
            # contained: this rule contributes no finding, the others still run
            logger.warning(
                f"[Evaluator] Rule {rule.rule_key}@{rule.version} inconclusive: {e}"
            )
            inconclusive.append(InconclusiveRule(
                rule_id=rule.rule_key,
                rule_version=rule.version,
                error=str(e),
            ))
            continue
        if not hits:
            continue
        rule_findings = _findings_for_rule(rule, hits, policy_version, denial)
        if matcher.fallback:
            fallback.extend(rule_findings)
        else:
            findings.extend(rule_findings)

    if not findings:
        findings = fallback
    elif fallback:
        logger.debug(
            f"[Evaluator] {subject.record_id}: fallback rules "
            f"{sorted({f.rule_id for f in fallback})} suppressed by other findings"
        )

    findings.sort(key=lambda f: f.rule_id)

    logger.debug(
        f"[Evaluator] {subject.record_id}: {len(rules)} rules, "
        f"{len(findings)} findings, {len(inconclusive)} inconclusive"
    )
    return Evaluation(
        kind=kind,
        findings=findings,
        inconclusive=inconclusive,
        rules_evaluated=len(rules),
        policy_version=policy_version,
    )
