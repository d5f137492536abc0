"""
Override Manager (pure half) -- computed PolicyResult + Override -> effective level.

Precedence, in order:

  1. an Override exists          -> override.level, state "overridden"
  2. hard stop with no verified
     contributing evidence       -> no level, state "unverified_critical",
                                    requires_review; only a human resolves it
  3. otherwise                   -> computed level, state "computed"

An override fully supersedes the computed level. It is never merged with it,
and it may downgrade a verified hard stop: the human decision is final and
its reason is mandatory.

Persistence and the audit trail live in store/override_store.py.
"""

import logging
from dataclasses import asdict, dataclass

from ..errors import RuleValidationError
from ..validators import validate_not_empty, validate_override_reason
from .models import EffectivePolicyResult, EffectiveState, Override, PolicyResult
from .severity import SeverityScale

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideAuditEntry:
    """Append-only fact: who moved a record from which level to which, and why."""

    record_id: str
    from_level: str | None
    to_level: str
    reason: str
    actor: str
    created_at: str

    def to_dict(self) -> dict:
        return asdict(self)


def compute_effective(
    policy_result: PolicyResult,
    override: Override | None = None,
) -> EffectivePolicyResult:
    computed = policy_result.escalation_level

    if override is not None:
        return EffectivePolicyResult(
            escalation_level=override.level,
            state=EffectiveState.OVERRIDDEN,
            computed_level=computed,
            override=override,
        )

    if policy_result.hard_stop and not policy_result.verified:
        return EffectivePolicyResult(
            escalation_level=None,
            state=EffectiveState.UNVERIFIED_CRITICAL,
            computed_level=computed,
            requires_review=True,
        )

    return EffectivePolicyResult(
        escalation_level=computed,
        state=EffectiveState.COMPUTED,
        computed_level=computed,
        requires_review=not policy_result.complete,
    )


def build_override(
    record_id: str,
    level: str,
    reason: str | None,
    actor: str,
    scale: SeverityScale,
    now: str,
) -> Override:
    """Validate a clinician override before it is persisted."""
    reason = validate_override_reason(reason)
    actor = validate_not_empty(actor, "created_by")
    if not scale.contains(level):
        raise RuleValidationError(
            f"level must be one of: {', '.join(scale.levels)}"
        )
    return Override(
        record_id=record_id,
        level=level,
        reason=reason,
        created_by=actor,
        created_at=now,
    )


def audit_entry(
    new: Override,
    previous: Override | None,
    policy_result: PolicyResult | None,
) -> OverrideAuditEntry:
    """from_level is what was in effect before: the prior override, else the computed level."""
    if previous is not None:
        from_level = previous.level
    elif policy_result is not None:
        from_level = policy_result.escalation_level
    else:
        from_level = None
    return OverrideAuditEntry(
        record_id=new.record_id,
        from_level=from_level,
        to_level=new.level,
        reason=new.reason,
        actor=new.created_by,
        created_at=new.created_at,
    )
