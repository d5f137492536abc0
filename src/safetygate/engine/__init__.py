"""
Safety rule engine -- the pure core. No database, no HTTP, no clock.

Runs versioned rules against an intake or a generated report and reduces the
findings to one fail-closed decision.

Components:
  - evaluate: Rule Evaluation Engine (rules + subject -> findings, inconclusive rules)
  - sanitize: Evidence Provenance Validator (allowlist, dedupe, verified)
  - aggregate: Policy Aggregator (worst severity wins, NO_RULES_AVAILABLE when empty)
  - compute_effective: Override Manager (override > unverified_critical > computed)
  - run_sandbox: dry run for rule authors
  - decide: evaluate -> sanitize -> aggregate in one call
"""

from .evaluator import evaluate, ruleset_fingerprint
from .evidence import ALLOWED_INTAKE_EVIDENCE_FIELDS, EVIDENCE_ALLOWLIST_VERSION, sanitize
from .logic import dump_logic, parse_logic
from .models import (
    EffectivePolicyResult,
    EffectiveState,
    EvidenceItem,
    EvidenceSource,
    Override,
    PolicyResult,
    RuleDefaults,
    RuleDefinition,
    RuleStatus,
    RuleVersion,
    TriggeredFinding,
    ValidationFlag,
)
from .override import compute_effective
from .pipeline import Decision, decide
from .policy import aggregate, summary_line, validation_flags
from .sandbox import run_sandbox
from .severity import CONTENT_SCALE, INTAKE_SCALE, EscalationLevel, RuleKind, ValidationSeverity, ValidationStatus
from .subjects import ChatMessage, IntakeSubject, ReportSection, ReportSubject

__all__ = [
    "ALLOWED_INTAKE_EVIDENCE_FIELDS",
    "CONTENT_SCALE",
    "ChatMessage",
    "Decision",
    "EVIDENCE_ALLOWLIST_VERSION",
    "EffectivePolicyResult",
    "EffectiveState",
    "EscalationLevel",
    "EvidenceItem",
    "EvidenceSource",
    "INTAKE_SCALE",
    "IntakeSubject",
    "Override",
    "PolicyResult",
    "ReportSection",
    "ReportSubject",
    "RuleDefaults",
    "RuleDefinition",
    "RuleKind",
    "RuleStatus",
    "RuleVersion",
    "TriggeredFinding",
    "ValidationFlag",
    "ValidationSeverity",
    "ValidationStatus",
    "aggregate",
    "compute_effective",
    "decide",
    "dump_logic",
    "evaluate",
    "parse_logic",
    "ruleset_fingerprint",
    "run_sandbox",
    "sanitize",
    "summary_line",
    "validation_flags",
]
