"""
RecordStore -- the intakes and report jobs the engine evaluates.

Only the input is stored. Findings and policy results are recomputed from
the active rules on every read; they are never persisted as a source of truth.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from ..engine.severity import SCALES
from ..errors import NotFoundError
from ..validators import validate_in_choices, validate_not_empty
from .schema import DEFAULT_DB_PATH, dict_from_row, get_connection, initialize_schema, utc_now

logger = logging.getLogger(__name__)


@dataclass
class StoredRecord:
    id: str
    kind: str
    subject: dict
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "subject": self.subject,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class RecordStore:
    """SQLite-backed evaluation inputs keyed by record id."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self._db_path = db_path
        initialize_schema(db_path)

    def save(self, record_id: str, kind: str, subject: dict) -> StoredRecord:
        """Insert or replace a record's input."""
        record_id = validate_not_empty(record_id, "record_id")
        validate_in_choices(kind, tuple(SCALES), "kind")
        now = utc_now()
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """INSERT INTO records (id, kind, subject_json, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       kind = excluded.kind,
                       subject_json = excluded.subject_json,
                       updated_at = excluded.updated_at""",
                (record_id, kind, json.dumps(subject, default=str), now, now),
            )
        finally:
            conn.close()
        logger.debug(f"[RecordStore] Saved {kind} record {record_id}")
        return self.get(record_id)

    def get(self, record_id: str) -> StoredRecord:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            raise NotFoundError(f"Record not found: {record_id}")
        d = dict_from_row(row)
        return StoredRecord(
            id=d["id"],
            kind=d["kind"],
            subject=d.get("subject") or {},
            created_at=d["created_at"],
            updated_at=d["updated_at"],
        )

    def list_records(self, kind: str | None = None, limit: int = 100) -> list[StoredRecord]:
        conn = get_connection(self._db_path)
        try:
            if kind:
                rows = conn.execute(
                    "SELECT id FROM records WHERE kind = ? ORDER BY updated_at DESC LIMIT ?",
                    (kind, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT id FROM records ORDER BY updated_at DESC LIMIT ?", (limit,)
                ).fetchall()
        finally:
            conn.close()
        return [self.get(r["id"]) for r in rows]
