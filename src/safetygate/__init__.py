"""
safetygate -- versioned, auditable safety and validation rules for clinical intake
and generated report content.

Components:
  - engine/: pure rule evaluation, evidence validation, policy aggregation, overrides
  - store/: SQLite persistence for rules, records and overrides
  - review/: review queue reasons, priorities and sampling
  - service.py: facade used by the API and the CLI
  - api/: FastAPI gateway
  - cli.py: typer operator CLI
"""

from .errors import EngineError, ErrorCode
from .service import SafetyService

__version__ = "0.1.0"

__all__ = ["EngineError", "ErrorCode", "SafetyService", "__version__"]
