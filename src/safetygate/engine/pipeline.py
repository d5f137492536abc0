"""
Decision pipeline -- evaluate -> sanitize -> aggregate, in that order.

This is the engine boundary: findings leave it only after the provenance
validator has run, so nothing downstream ever sees unvalidated evidence.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from .evaluator import evaluate
from .evidence import sanitize
from .models import Evaluation, InconclusiveRule, PolicyResult, RuleVersion, TriggeredFinding
from .policy import aggregate, summary_line, validation_flags
from .severity import RuleKind
from .subjects import EvaluationSubject

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    """Sanitized findings plus the computed policy result for one subject."""

    record_id: str
    evaluation: Evaluation
    findings: list[TriggeredFinding] = field(default_factory=list)
    policy_result: PolicyResult | None = None

    @property
    def inconclusive(self) -> list[InconclusiveRule]:
        return self.evaluation.inconclusive

    @property
    def summary(self) -> str:
        return summary_line(self.policy_result)

    def to_dict(self) -> dict:
        data = {
            "record_id": self.record_id,
            "findings": [f.to_dict() for f in self.findings],
            "inconclusive": [r.to_dict() for r in self.inconclusive],
            "policy_result": self.policy_result.to_dict(),
            "summary": self.summary,
        }
        if self.evaluation.kind == RuleKind.CONTENT_VALIDATION:
            data["flags"] = [f.to_dict() for f in validation_flags(self.record_id, self.findings)]
        return data


def decide(
    rules: Sequence[RuleVersion],
    subject: EvaluationSubject,
    kind: str | None = None,
) -> Decision:
    """Run the full pure pipeline. Raises NoRulesAvailableError (fail-closed)."""
    evaluation = evaluate(rules, subject, kind=kind)
    findings = sanitize(evaluation.findings, subject.record_id, subject.known_source_ids())
    policy_result = aggregate(evaluation, findings)
    return Decision(
        record_id=subject.record_id,
        evaluation=evaluation,
        findings=findings,
        policy_result=policy_result,
    )
