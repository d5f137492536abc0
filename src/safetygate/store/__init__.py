"""
Persistence for the safety rule engine -- SQLite, one connection per operation.

Components:
  - RuleStore: rule definitions, versions, atomic activation
  - OverrideStore: current override per record + append-only audit
  - RecordStore: intake / report inputs awaiting evaluation
"""

from .override_store import OverrideStore
from .record_store import RecordStore, StoredRecord
from .rule_store import RuleStore, RuleSummary
from .schema import get_connection, initialize_schema

__all__ = [
    "OverrideStore",
    "RecordStore",
    "RuleStore",
    "RuleSummary",
    "StoredRecord",
    "get_connection",
    "initialize_schema",
]
