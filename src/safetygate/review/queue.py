"""
Review queue routing -- why a record needs a human, and how urgently.

The engine is the single source of truth for WHY something needs review.
This module turns engine output into a closed vocabulary of queue reasons
and maps them to priority tiers; the queue UI only renders them.

  SAFETY_BLOCK      effective level is the hard stop          P0
  SAFETY_UNKNOWN    unverified hard stop, incomplete or
                    failed safety evaluation                  P0
  VALIDATION_FAIL   content validation failed (or could not run) P1
  SAFETY_FLAG       effective level is the middle level       P2
  VALIDATION_FLAG   content validation flagged                P2
  MANUAL_REVIEW     sampling check itself failed (fail-safe)  P3
  SAMPLED           deterministic quality sample              P3

Sampling only runs when nothing else queued the record. It hashes the
record id with a versioned salt, so the same record under the same config
is always sampled the same way.

Usage:
    decision = route_for_review(
        "job-1",
        content_status="flag",
        safety=effective_result,
        sampling=SamplingConfig(rate=0.1),
    )
    decision.reasons   # ["VALIDATION_FLAG"]
    decision.priority  # "P2"
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Callable

from ..engine.models import EffectivePolicyResult, EffectiveState
from ..engine.severity import ValidationStatus, scale_for_kind

logger = logging.getLogger(__name__)


class QueueReason:
    VALIDATION_FAIL = "VALIDATION_FAIL"
    VALIDATION_FLAG = "VALIDATION_FLAG"
    SAFETY_BLOCK = "SAFETY_BLOCK"
    SAFETY_FLAG = "SAFETY_FLAG"
    SAFETY_UNKNOWN = "SAFETY_UNKNOWN"
    SAMPLED = "SAMPLED"
    MANUAL_REVIEW = "MANUAL_REVIEW"


class Priority:
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


REASON_PRIORITY: dict[str, str] = {
    QueueReason.SAFETY_BLOCK: Priority.P0,
    QueueReason.SAFETY_UNKNOWN: Priority.P0,
    QueueReason.VALIDATION_FAIL: Priority.P1,
    QueueReason.SAFETY_FLAG: Priority.P2,
    QueueReason.VALIDATION_FLAG: Priority.P2,
    QueueReason.MANUAL_REVIEW: Priority.P3,
    QueueReason.SAMPLED: Priority.P3,
}

REASON_LABELS: dict[str, str] = {
    QueueReason.VALIDATION_FAIL: "Validation Failed",
    QueueReason.VALIDATION_FLAG: "Validation Flagged",
    QueueReason.SAFETY_BLOCK: "Safety Blocked",
    QueueReason.SAFETY_FLAG: "Safety Flagged",
    QueueReason.SAFETY_UNKNOWN: "Safety Check Failed",
    QueueReason.SAMPLED: "Quality Sampling",
    QueueReason.MANUAL_REVIEW: "Manual Review Requested",
}

PRIORITY_ORDER = (Priority.P0, Priority.P1, Priority.P2, Priority.P3)


@dataclass(frozen=True)
class SamplingConfig:
    """rate is the share of otherwise-clean records sampled (0..1)."""

    rate: float = 0.0
    salt: str = "safetygate-sampling-v1"
    version: str = "v1.0.0"


@dataclass
class QueueDecision:
    reasons: list[str] = field(default_factory=list)
    priority: str | None = None
    is_sampled: bool = False
    sampling_hash: str = ""
    sampling_config_version: str = ""

    @property
    def should_queue(self) -> bool:
        return bool(self.reasons)

    def to_dict(self) -> dict:
        return {
            "should_queue": self.should_queue,
            "reasons": list(self.reasons),
            "labels": [REASON_LABELS[r] for r in self.reasons],
            "priority": self.priority,
            "is_sampled": self.is_sampled,
            "sampling_hash": self.sampling_hash,
            "sampling_config_version": self.sampling_config_version,
        }


def should_sample(record_id: str, config: SamplingConfig) -> tuple[bool, str]:
    """Deterministic sample decision. Raises ValueError on an invalid config."""
    if not 0.0 <= config.rate <= 1.0:
        raise ValueError(f"sampling rate must be within [0, 1], got {config.rate}")
    if not record_id:
        raise ValueError("record_id is required for sampling")
    digest = hashlib.sha256(f"{config.salt}:{record_id}".encode("utf-8")).hexdigest()
    bucket = int(digest[:8], 16) % 10_000
    return bucket < int(round(config.rate * 10_000)), digest[:16]


def priority_for(reasons: list[str]) -> str | None:
    tiers = [REASON_PRIORITY[r] for r in reasons]
    for tier in PRIORITY_ORDER:
        if tier in tiers:
            return tier
    return None


def safety_reason(
    safety: EffectivePolicyResult | None,
    kind: str = "intake_safety",
    evaluation_failed: bool = False,
) -> str | None:
    """Queue reason for the safety side, or None when it needs no review."""
    if evaluation_failed or safety is None:
        return QueueReason.SAFETY_UNKNOWN
    if safety.state == EffectiveState.UNVERIFIED_CRITICAL:
        return QueueReason.SAFETY_UNKNOWN
    scale = scale_for_kind(kind)
    status = scale.status_for(safety.escalation_level)
    if status == ValidationStatus.FAIL:
        return QueueReason.SAFETY_BLOCK
    if status == ValidationStatus.FLAG:
        return QueueReason.SAFETY_FLAG
    if safety.requires_review:
        return QueueReason.SAFETY_UNKNOWN
    return None


def content_reason(content_status: str | None, evaluation_failed: bool = False) -> str | None:
    if evaluation_failed:
        return QueueReason.VALIDATION_FAIL
    if content_status == ValidationStatus.FAIL:
        return QueueReason.VALIDATION_FAIL
    if content_status == ValidationStatus.FLAG:
        return QueueReason.VALIDATION_FLAG
    return None


def route_for_review(
    record_id: str,
    content_status: str | None = None,
    safety: EffectivePolicyResult | None = None,
    safety_checked: bool = True,
    content_failed: bool = False,
    safety_failed: bool = False,
    sampling: SamplingConfig | None = None,
    sampler: Callable[[str, SamplingConfig], tuple[bool, str]] = should_sample,
) -> QueueDecision:
    """Collect every applicable reason; sample only when none applies.

    ``safety_checked=False`` means the record has no safety side at all
    (content-only jobs), as opposed to a safety check that failed.
    """
    reasons: list[str] = []

    reason = content_reason(content_status, content_failed)
    if reason:
        reasons.append(reason)
    if safety_checked:
        reason = safety_reason(safety, evaluation_failed=safety_failed)
        if reason:
            reasons.append(reason)

    decision = QueueDecision(reasons=reasons)
    if not reasons and sampling is not None:
        decision.sampling_config_version = sampling.version
        try:
            sampled, digest = sampler(record_id, sampling)
        except (ValueError, RuntimeError) as e:
            logger.warning(f"[ReviewQueue] Sampling check failed for {record_id}: {e}; manual review")
            decision.reasons.append(QueueReason.MANUAL_REVIEW)
        else:
            decision.sampling_hash = digest
            if sampled:
                decision.is_sampled = True
                decision.reasons.append(QueueReason.SAMPLED)

    decision.priority = priority_for(decision.reasons)
    if decision.should_queue:
        logger.info(f"[ReviewQueue] {record_id} queued {decision.reasons} at {decision.priority}")
    return decision
