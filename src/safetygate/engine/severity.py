"""
Severity scales -- the one place that knows how levels order.

Both front ends share the same reduction (worst level wins) and the same
fail-closed rules; only the labels differ:

  intake safety:       A > B > C          (A = hard stop)
  content validation:  critical > warning > info

A scale maps its highest level to FAIL, its middle level to FLAG and
everything else (lowest level, or no finding) to PASS.
"""

from dataclasses import dataclass
from typing import Iterable


class EscalationLevel:
    """Intake safety levels. A is the hard stop."""

    A = "A"
    B = "B"
    C = "C"


class ValidationSeverity:
    """Content validation severities."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ValidationStatus:
    """Aggregate decision for a scale."""

    PASS = "pass"
    FLAG = "flag"
    FAIL = "fail"


class RuleKind:
    """Which front end a rule definition belongs to."""

    INTAKE_SAFETY = "intake_safety"
    CONTENT_VALIDATION = "content_validation"


@dataclass(frozen=True)
class SeverityScale:
    """An ordered set of levels, highest first."""

    name: str
    levels: tuple[str, ...]

    def __post_init__(self):
        if len(self.levels) < 2:
            raise ValueError(f"Scale '{self.name}' needs at least two levels")

    @property
    def highest(self) -> str:
        return self.levels[0]

    def contains(self, level: str | None) -> bool:
        return level in self.levels

    def rank(self, level: str | None) -> int:
        """Higher rank = more severe. Unknown or None ranks below every level."""
        if level not in self.levels:
            return -1
        return len(self.levels) - self.levels.index(level)

    def worst(self, levels: Iterable[str | None]) -> str | None:
        worst_level = None
        for level in levels:
            if self.rank(level) > self.rank(worst_level):
                worst_level = level
        return worst_level

    def status_for(self, level: str | None) -> str:
        if level is None or level not in self.levels:
            return ValidationStatus.PASS
        index = self.levels.index(level)
        if index == 0:
            return ValidationStatus.FAIL
        if index == 1:
            return ValidationStatus.FLAG
        return ValidationStatus.PASS


INTAKE_SCALE = SeverityScale(
    name=RuleKind.INTAKE_SAFETY,
    levels=(EscalationLevel.A, EscalationLevel.B, EscalationLevel.C),
)

CONTENT_SCALE = SeverityScale(
    name=RuleKind.CONTENT_VALIDATION,
    levels=(ValidationSeverity.CRITICAL, ValidationSeverity.WARNING, ValidationSeverity.INFO),
)

SCALES: dict[str, SeverityScale] = {
    RuleKind.INTAKE_SAFETY: INTAKE_SCALE,
    RuleKind.CONTENT_VALIDATION: CONTENT_SCALE,
}


def scale_for_kind(kind: str) -> SeverityScale:
    try:
        return SCALES[kind]
    except KeyError:
        raise ValueError(f"Unknown rule kind: {kind!r}") from None
