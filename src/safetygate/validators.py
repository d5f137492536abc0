"""
Input validators -- checks applied at the engine boundary before any write.

Parse at the boundary: change reasons, override reasons and identifiers are
validated here so the store and engine only ever see clean values.
"""

import json
import logging
import re

from .errors import OverrideReasonRequiredError, RuleValidationError

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 2_000
MAX_TITLE_LENGTH = 200
MAX_LOGIC_BYTES = 64_000

RULE_KEY_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]*$")


def validate_not_empty(value: str | None, field_name: str = "input") -> str:
    """Validate that a string is present and not whitespace-only."""
    if value is None or not str(value).strip():
        raise RuleValidationError(f"{field_name} cannot be empty")
    return str(value).strip()


def validate_length(
    value: str,
    field_name: str = "input",
    min_length: int = 0,
    max_length: int = 100_000,
) -> str:
    """Validate string length is within bounds."""
    if len(value) < min_length:
        raise RuleValidationError(f"{field_name} must be at least {min_length} characters")
    if len(value) > max_length:
        raise RuleValidationError(f"{field_name} must be at most {max_length} characters")
    return value


def validate_change_reason(value: str | None) -> str:
    """A change_reason is the audit trail of why a rule changed; it is never optional."""
    reason = validate_not_empty(value, "change_reason")
    return validate_length(reason, "change_reason", max_length=MAX_REASON_LENGTH)


def validate_override_reason(value: str | None) -> str:
    """Override reasons raise their own code so the UI can prompt for one."""
    if value is None or not str(value).strip():
        raise OverrideReasonRequiredError("Override reason is required")
    reason = str(value).strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise RuleValidationError(f"reason must be at most {MAX_REASON_LENGTH} characters")
    return reason


def validate_rule_key(value: str) -> str:
    """Rule keys are stable identifiers: letter first, then letters, digits, _ . -"""
    key = validate_not_empty(value, "key")
    if not RULE_KEY_PATTERN.match(key):
        raise RuleValidationError(
            "key must start with a letter and contain only "
            "letters, numbers, underscores, dots, and hyphens"
        )
    return validate_length(key, "key", max_length=MAX_TITLE_LENGTH)


def validate_in_choices(value: str, choices, field_name: str = "value") -> str:
    """Validate that a value is one of the allowed choices."""
    if value not in choices:
        raise RuleValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def validate_logic_size(data: dict, field_name: str = "logic") -> dict:
    """Validate that serialized rule logic stays under a maximum byte size."""
    serialized = json.dumps(data, default=str)
    if len(serialized) > MAX_LOGIC_BYTES:
        raise RuleValidationError(
            f"{field_name} exceeds maximum size of {MAX_LOGIC_BYTES} bytes"
        )
    return data
