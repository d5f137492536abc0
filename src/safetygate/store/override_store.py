"""
OverrideStore -- clinician overrides with an append-only audit trail.

The current override per record is last-write-wins. Every write also
appends an audit fact (who, when, from-level, to-level, reason) in the same
transaction, so concurrent overrides are recorded, never lost.

Usage:
    store = OverrideStore(db_path)
    override = store.set_override("intake-1", "C", "Test override", "dr.meyer",
                                  INTAKE_SCALE, computed=decision.policy_result)
    store.history("intake-1")  # [OverrideAuditEntry(from_level="A", to_level="C", ...)]
"""

import logging
import uuid
from pathlib import Path

from ..engine.models import Override, PolicyResult
from ..engine.override import OverrideAuditEntry, audit_entry, build_override
from ..engine.severity import SeverityScale
from .schema import DEFAULT_DB_PATH, dict_from_row, get_connection, initialize_schema, utc_now, write_transaction

logger = logging.getLogger(__name__)


def _row_to_override(d: dict) -> Override:
    return Override(
        record_id=d["record_id"],
        level=d["level"],
        reason=d["reason"],
        created_by=d["created_by"],
        created_at=d["created_at"],
    )


class OverrideStore:
    """SQLite-backed overrides keyed by record id."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self._db_path = db_path
        initialize_schema(db_path)

    def get_override(self, record_id: str) -> Override | None:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM policy_overrides WHERE record_id = ?", (record_id,)
            ).fetchone()
            return _row_to_override(dict_from_row(row)) if row else None
        finally:
            conn.close()

    def set_override(
        self,
        record_id: str,
        level: str,
        reason: str | None,
        actor: str,
        scale: SeverityScale,
        computed: PolicyResult | None = None,
    ) -> Override:
        """Validate, persist and audit an override. Raises OVERRIDE_REASON_REQUIRED on a blank reason."""
        override = build_override(record_id, level, reason, actor, scale, utc_now())

        conn = get_connection(self._db_path)
        try:
            with write_transaction(conn):
                row = conn.execute(
                    "SELECT * FROM policy_overrides WHERE record_id = ?", (record_id,)
                ).fetchone()
                previous = _row_to_override(dict_from_row(row)) if row else None
                conn.execute(
                    """INSERT INTO policy_overrides (record_id, level, reason, created_by, created_at)
                       VALUES (?, ?, ?, ?, ?)
                       ON CONFLICT(record_id) DO UPDATE SET
                           level = excluded.level,
                           reason = excluded.reason,
                           created_by = excluded.created_by,
                           created_at = excluded.created_at""",
                    (record_id, override.level, override.reason, override.created_by, override.created_at),
                )
                entry = audit_entry(override, previous, computed)
                conn.execute(
                    """INSERT INTO override_audit
                       (id, record_id, from_level, to_level, reason, actor, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        str(uuid.uuid4()),
                        entry.record_id,
                        entry.from_level,
                        entry.to_level,
                        entry.reason,
                        entry.actor,
                        entry.created_at,
                    ),
                )
        finally:
            conn.close()

        logger.info(
            f"[OverrideStore] {record_id}: {entry.from_level} -> {entry.to_level} by {actor}"
        )
        return override

    def history(self, record_id: str) -> list[OverrideAuditEntry]:
        """Every override ever written for the record, oldest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                """SELECT * FROM override_audit WHERE record_id = ?
                   ORDER BY created_at ASC, rowid ASC""",
                (record_id,),
            ).fetchall()
            return [
                OverrideAuditEntry(
                    record_id=r["record_id"],
                    from_level=r["from_level"],
                    to_level=r["to_level"],
                    reason=r["reason"],
                    actor=r["actor"],
                    created_at=r["created_at"],
                )
                for r in rows
            ]
        finally:
            conn.close()
