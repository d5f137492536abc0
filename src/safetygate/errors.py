"""
Error taxonomy for the safety rule engine.

Every error the engine raises carries a stable ``code`` from a small closed
vocabulary so callers (API routes, CLI, queue workers) can branch on the code
instead of parsing messages.

  VALIDATION_ERROR               malformed rule logic, blank change_reason
  NOT_DRAFT                      mutate/activate a version that is not a draft
  NOT_FOUND                      unknown rule, version, or record
  NO_RULES_AVAILABLE             empty or unloadable rule set (fail-closed)
  OVERRIDE_REASON_REQUIRED       override without a reason
  CONCURRENT_ACTIVATION_CONFLICT activation raced another activation; retry

INVALID_EVIDENCE is deliberately absent: dropping evidence is a filtering
outcome that gets logged per finding, never raised.
"""


class ErrorCode:
    """Closed vocabulary of engine error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_DRAFT = "NOT_DRAFT"
    NOT_FOUND = "NOT_FOUND"
    NO_RULES_AVAILABLE = "NO_RULES_AVAILABLE"
    OVERRIDE_REASON_REQUIRED = "OVERRIDE_REASON_REQUIRED"
    CONCURRENT_ACTIVATION_CONFLICT = "CONCURRENT_ACTIVATION_CONFLICT"
    INVALID_EVIDENCE = "INVALID_EVIDENCE"


class EngineError(Exception):
    """Base class for all engine errors. ``code`` is one of ErrorCode."""

    code: str = "ENGINE_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class RuleValidationError(EngineError, ValueError):
    """Rule logic, defaults or change_reason failed validation before any write."""

    code = ErrorCode.VALIDATION_ERROR


class NotDraftError(EngineError):
    """Attempted to mutate or activate a version that is no longer a draft."""

    code = ErrorCode.NOT_DRAFT


class NotFoundError(EngineError, LookupError):
    """A rule, version or record id does not exist."""

    code = ErrorCode.NOT_FOUND


class NoRulesAvailableError(EngineError):
    """The active rule set is empty or could not be loaded. Never a pass."""

    code = ErrorCode.NO_RULES_AVAILABLE


class OverrideReasonRequiredError(EngineError, ValueError):
    """A clinician override was submitted without a reason."""

    code = ErrorCode.OVERRIDE_REASON_REQUIRED


class ConcurrentActivationConflict(EngineError):
    """Another activation for the same rule won the race. The caller should retry."""

    code = ErrorCode.CONCURRENT_ACTIVATION_CONFLICT
