"""
Data models for the safety rule engine.

Rules are stored (RuleDefinition + immutable RuleVersion history). Findings,
policy results and validation flags are derived: they are recomputed from
rules + input on every evaluation and are never a source of truth. Override
is the only independently persisted, mutable entity.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from .severity import RuleKind, scale_for_kind


# =============================================================================
# VOCABULARIES
# =============================================================================


class RuleStatus:
    """RuleVersion lifecycle: draft -> active -> archived. Never deleted."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class EvidenceSource:
    """Where a piece of evidence points."""

    CHAT = "chat"
    INTAKE = "intake"
    REPORT_SECTION = "report_section"


class FindingAction:
    """What a fired rule asks the clinician to do."""

    BLOCK = "block"
    ESCALATE = "escalate"
    REVIEW = "review"
    INFORM = "inform"


FINDING_ACTIONS = (
    FindingAction.BLOCK,
    FindingAction.ESCALATE,
    FindingAction.REVIEW,
    FindingAction.INFORM,
)


class EffectiveState:
    """How the effective policy level was reached."""

    COMPUTED = "computed"
    OVERRIDDEN = "overridden"
    UNVERIFIED_CRITICAL = "unverified_critical"


# =============================================================================
# RULES
# =============================================================================


@dataclass(frozen=True)
class RuleDefaults:
    """Severity and action a rule's findings carry."""

    level_default: str
    action_default: str | None = None


@dataclass
class RuleDefinition:
    """Stable identity of a rule. Owns a history of versions."""

    id: str
    key: str
    title: str
    kind: str = RuleKind.INTAKE_SAFETY
    created_by: str = ""
    created_at: str = ""
    active_revision: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RuleVersion:
    """One immutable version of a rule. Mutable only while ``draft``.

    ``rule_key``, ``title`` and ``kind`` are copied from the owning
    definition so a version can be evaluated on its own (sandbox).
    ``base_revision`` is the rule's active_revision when the draft was made.
    """

    id: str
    rule_id: str
    version: int
    status: str
    logic: dict | None
    defaults: RuleDefaults | None
    change_reason: str
    created_by: str
    created_at: str
    rule_key: str = ""
    title: str = ""
    kind: str = RuleKind.INTAKE_SAFETY
    activation_reason: str = ""
    activated_by: str = ""
    activated_at: str = ""
    archived_at: str = ""
    base_revision: int = 0

    @property
    def is_draft(self) -> bool:
        return self.status == RuleStatus.DRAFT

    @property
    def scale(self):
        return scale_for_kind(self.kind)

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# FINDINGS
# =============================================================================


@dataclass(frozen=True)
class EvidenceItem:
    """A pointer to the exact text or field that made a rule fire."""

    source: str
    source_id: str
    excerpt: str
    field_path: str | None = None

    @property
    def dedupe_key(self) -> tuple:
        return (self.source, self.source_id, self.field_path, self.excerpt)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TriggeredFinding:
    """A rule that fired against one input.

    ``verified`` is True only when at least one evidence item survived
    provenance validation. ``evidence_dropped`` counts items removed by the
    provenance validator so "fired but evidence was invalid" stays visible.
    ``contradicted`` is set when the intake also lists the symptom as denied.
    """

    rule_id: str
    title: str
    severity: str
    short_reason: str
    action: str | None
    verified: bool
    evidence: tuple[EvidenceItem, ...] = ()
    policy_version: str = ""
    rule_version: int = 0
    section_key: str | None = None
    evidence_dropped: int = 0
    contradicted: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["evidence"] = [item.to_dict() for item in self.evidence]
        return data


@dataclass(frozen=True)
class InconclusiveRule:
    """A rule that could not be evaluated. Contributes no finding, never a pass."""

    rule_id: str
    rule_version: int
    error: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ValidationFlag:
    """Content-validation view of a finding."""

    flag_id: str
    rule_id: str
    rule_version: int
    section_key: str | None
    severity: str
    reason: str
    verified: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Evaluation:
    """Raw output of the evaluation engine for one input."""

    kind: str
    findings: list[TriggeredFinding] = field(default_factory=list)
    inconclusive: list[InconclusiveRule] = field(default_factory=list)
    rules_evaluated: int = 0
    policy_version: str = ""


# =============================================================================
# DECISIONS
# =============================================================================


@dataclass(frozen=True)
class PolicyResult:
    """Worst-severity-wins reduction of validated findings.

    triggered_rule_ids: every rule that produced a finding.
    contributing_rule_ids: the rules at the decisive (worst) level, ties kept.
    verified: at least one contributing finding carries verified evidence.
    hard_stop: the decisive level is the top of the scale.
    contradictions_present: a finding was also denied by the input; the
        level is then never below the middle of the scale.
    """

    kind: str
    escalation_level: str | None
    triggered_rule_ids: tuple[str, ...] = ()
    contributing_rule_ids: tuple[str, ...] = ()
    inconclusive_rule_ids: tuple[str, ...] = ()
    verified: bool = False
    hard_stop: bool = False
    status: str = "pass"
    policy_version: str = ""
    contradictions_present: bool = False

    @property
    def complete(self) -> bool:
        """False when any rule was inconclusive."""
        return not self.inconclusive_rule_ids

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("triggered_rule_ids", "contributing_rule_ids", "inconclusive_rule_ids"):
            data[key] = list(data[key])
        data["complete"] = self.complete
        return data


@dataclass(frozen=True)
class Override:
    """A clinician's decision attached to one evaluated record."""

    record_id: str
    level: str
    reason: str
    created_by: str
    created_at: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EffectivePolicyResult:
    """The level consumers act on. Override fully supersedes; never a merge."""

    escalation_level: str | None
    state: str
    computed_level: str | None
    override: Override | None = None
    requires_review: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "escalation_level": self.escalation_level,
            "state": self.state,
            "computed_level": self.computed_level,
            "override": self.override.to_dict() if self.override else None,
            "requires_review": self.requires_review,
        }
