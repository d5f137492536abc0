"""
SafetyService -- wires the stores to the pure engine for API and CLI callers.

Every read recomputes the decision from the currently active rules and the
stored input. A record read always returns the computed policy_result and the
effective_policy_result side by side, so consumers can show "system said X,
human overrode to Y".

Three evaluation states are kept apart and never rendered the same:

  completed   every rule ran
  incomplete  some rules were inconclusive (result still fail-closed)
  failed      no decision at all (NO_RULES_AVAILABLE)

Usage:
    service = SafetyService(Settings.from_env())
    service.submit_record("intake-1", "intake_safety", {"structured_data": {...}})
    view = service.read_record("intake-1")
    view.to_dict()["effective_policy_result"]
"""

import logging
from dataclasses import dataclass

from .config import Settings
from .engine.models import EffectivePolicyResult, EffectiveState, Override, RuleVersion
from .engine.override import OverrideAuditEntry, compute_effective
from .engine.pipeline import Decision, decide
from .engine.sandbox import SandboxResult, inline_rule, run_sandbox
from .engine.severity import SCALES, RuleKind, scale_for_kind
from .engine.subjects import IntakeSubject, ReportSubject
from .errors import EngineError, NoRulesAvailableError
from .review.queue import QueueDecision, SamplingConfig, route_for_review
from .store import OverrideStore, RecordStore, RuleStore, StoredRecord
from .validators import validate_in_choices

logger = logging.getLogger(__name__)


class EvaluationState:
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    FAILED = "failed"


def build_subject(kind: str, record_id: str, data: dict):
    data = {**data, "id": record_id, "job_id": record_id}
    if kind == RuleKind.CONTENT_VALIDATION:
        return ReportSubject.from_dict(data)
    return IntakeSubject.from_dict(data)


@dataclass
class RecordView:
    """Everything a consumer needs about one evaluated record."""

    record: StoredRecord
    decision: Decision | None
    effective: EffectivePolicyResult | None
    override: Override | None
    queue: QueueDecision
    error: EngineError | None = None

    @property
    def evaluation_state(self) -> str:
        if self.decision is None:
            return EvaluationState.FAILED
        if self.decision.inconclusive:
            return EvaluationState.INCOMPLETE
        return EvaluationState.COMPLETED

    def to_dict(self) -> dict:
        decision = self.decision.to_dict() if self.decision else {}
        return {
            "record_id": self.record.id,
            "kind": self.record.kind,
            "evaluation_state": self.evaluation_state,
            "error": self.error.to_dict() if self.error else None,
            "findings": decision.get("findings", []),
            "inconclusive": decision.get("inconclusive", []),
            "flags": decision.get("flags"),
            "summary": decision.get("summary"),
            "policy_result": decision.get("policy_result"),
            "effective_policy_result": self.effective.to_dict() if self.effective else None,
            "policy_override": self.override.to_dict() if self.override else None,
            "review": self.queue.to_dict(),
        }


class SafetyService:
    """Facade over RuleStore, RecordStore, OverrideStore and the engine."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings.from_env()
        db_path = self.settings.db_path
        self.rules = RuleStore(db_path)
        self.records = RecordStore(db_path)
        self.overrides = OverrideStore(db_path)
        self.sampling = SamplingConfig(rate=self.settings.sampling_rate)
        if self.settings.seed_catalog:
            self.rules.seed_catalog()

    # =========================================================================
    # EVALUATION
    # =========================================================================

    def evaluate(self, kind: str, record_id: str, data: dict) -> Decision:
        """Evaluate an input against the active rules without storing anything."""
        rules = self.rules.active_rule_set(kind)
        return decide(rules, build_subject(kind, record_id, data), kind=kind)

    def submit_record(self, record_id: str, kind: str, data: dict) -> RecordView:
        self.records.save(record_id, kind, data)
        return self.read_record(record_id)

    def read_record(self, record_id: str) -> RecordView:
        record = self.records.get(record_id)
        override = self.overrides.get_override(record_id)
        try:
            decision = self.evaluate(record.kind, record.id, record.subject)
        except NoRulesAvailableError as e:
            logger.error(f"[SafetyService] {record_id}: evaluation could not be completed: {e}")
            return RecordView(
                record=record,
                decision=None,
                effective=None,
                override=override,
                queue=self._route(record, None, failed=True),
                error=e,
            )

        effective = compute_effective(decision.policy_result, override)
        return RecordView(
            record=record,
            decision=decision,
            effective=effective,
            override=override,
            queue=self._route(record, decision, effective),
        )

    def set_override(self, record_id: str, level: str, reason: str | None, actor: str) -> RecordView:
        record = self.records.get(record_id)
        try:
            computed = self.evaluate(record.kind, record.id, record.subject).policy_result
        except NoRulesAvailableError:
            computed = None
        self.overrides.set_override(
            record_id, level, reason, actor, scale_for_kind(record.kind), computed=computed
        )
        return self.read_record(record_id)

    def override_history(self, record_id: str) -> list[OverrideAuditEntry]:
        self.records.get(record_id)
        return self.overrides.history(record_id)

    # =========================================================================
    # SANDBOX
    # =========================================================================

    def sandbox(
        self,
        input_text: str,
        kind: str = RuleKind.INTAKE_SAFETY,
        rule_version_id: str | None = None,
        logic: dict | None = None,
        level: str | None = None,
        structured_data: dict | None = None,
        signals: list[str] | None = None,
        scores: dict | None = None,
    ) -> SandboxResult:
        """Dry run. One rule version, inline logic, or (neither) the active set of ``kind``."""
        validate_in_choices(kind, tuple(SCALES), "kind")
        rules: list[RuleVersion]
        if rule_version_id:
            rules = [self.rules.get_version(rule_version_id)]
        elif logic is not None:
            rules = [inline_rule(logic, level or scale_for_kind(kind).highest, kind)]
        else:
            rules = self.rules.active_rule_set(kind)
        return run_sandbox(input_text, rules, structured_data, signals, scores)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _route(
        self,
        record: StoredRecord,
        decision: Decision | None,
        effective: EffectivePolicyResult | None = None,
        failed: bool = False,
    ) -> QueueDecision:
        if record.kind == RuleKind.CONTENT_VALIDATION:
            status = decision.policy_result.status if decision else None
            if effective is not None and effective.state == EffectiveState.OVERRIDDEN:
                status = scale_for_kind(record.kind).status_for(effective.escalation_level)
            return route_for_review(
                record.id,
                content_status=status,
                safety_checked=False,
                content_failed=failed,
                sampling=self.sampling,
            )
        return route_for_review(
            record.id,
            safety=effective,
            safety_failed=failed,
            sampling=self.sampling,
        )
