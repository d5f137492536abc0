"""
Rule store database schema -- SQLite tables for rules, versions, records, overrides.

Usage:
    initialize_schema(db_path)  # Creates tables if they don't exist
    get_connection(db_path)     # Returns a connection with WAL mode enabled

All tables use TEXT primary keys (UUIDs) and TEXT timestamps (ISO format, UTC).
JSON fields are stored as serialized strings in columns ending in _json.

One active version per rule is enforced by the database itself (partial
unique index), not only by application code.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data/safetygate.db")

# Seconds a writer waits on a locked database before giving up
BUSY_TIMEOUT = 5.0

SCHEMA_SQL = """
-- Rule definitions: stable identity, never deleted
CREATE TABLE IF NOT EXISTS rule_definitions (
    id TEXT PRIMARY KEY,
    key TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    kind TEXT NOT NULL,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    active_revision INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_rule_definitions_kind
    ON rule_definitions(kind, key);

-- Rule versions: immutable once activated.
-- base_revision is the rule's active_revision when the draft was created.
CREATE TABLE IF NOT EXISTS rule_versions (
    id TEXT PRIMARY KEY,
    rule_id TEXT NOT NULL REFERENCES rule_definitions(id),
    version INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'draft',
    logic_json TEXT,
    defaults_json TEXT,
    change_reason TEXT NOT NULL,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    activation_reason TEXT NOT NULL DEFAULT '',
    activated_by TEXT NOT NULL DEFAULT '',
    activated_at TEXT NOT NULL DEFAULT '',
    archived_at TEXT NOT NULL DEFAULT '',
    base_revision INTEGER NOT NULL DEFAULT 0,
    UNIQUE (rule_id, version)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_rule_versions_one_active
    ON rule_versions(rule_id) WHERE status = 'active';
CREATE INDEX IF NOT EXISTS idx_rule_versions_status
    ON rule_versions(status, rule_id);

-- Rule lifecycle audit: draft created, draft updated, activated
CREATE TABLE IF NOT EXISTS rule_audit (
    id TEXT PRIMARY KEY,
    rule_id TEXT NOT NULL,
    version_id TEXT NOT NULL,
    event TEXT NOT NULL,
    actor TEXT NOT NULL,
    reason TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_rule_audit_rule
    ON rule_audit(rule_id, created_at);

-- Records under evaluation: intakes and report jobs
CREATE TABLE IF NOT EXISTS records (
    id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    subject_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Current clinician override per record (last write wins)
CREATE TABLE IF NOT EXISTS policy_overrides (
    record_id TEXT PRIMARY KEY,
    level TEXT NOT NULL,
    reason TEXT NOT NULL,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL
);

-- Every override write, append-only
CREATE TABLE IF NOT EXISTS override_audit (
    id TEXT PRIMARY KEY,
    record_id TEXT NOT NULL,
    from_level TEXT,
    to_level TEXT NOT NULL,
    reason TEXT NOT NULL,
    actor TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_override_audit_record
    ON override_audit(record_id, created_at);
"""

# Columns added after a table first shipped: CREATE TABLE IF NOT EXISTS leaves
# older databases without them
ADDED_COLUMNS = {
    "rule_versions": {"base_revision": "INTEGER NOT NULL DEFAULT 0"},
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode and foreign keys enabled.

    isolation_level=None: transactions are opened explicitly (BEGIN IMMEDIATE)
    by the writes that need them.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Create rule store tables if they don't exist."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        for table, columns in ADDED_COLUMNS.items():
            present = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
            for name, ddl in columns.items():
                if name not in present:
                    conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
                    logger.info(f"[Schema] Added column {table}.{name}")
        logger.info(f"[Schema] Initialized at {db_path}")
    finally:
        conn.close()


def dict_from_row(row: sqlite3.Row) -> dict:
    """Convert a sqlite3.Row to a plain dict, parsing JSON fields."""
    d = dict(row)
    for key in list(d.keys()):
        if not key.endswith("_json"):
            continue
        raw = d.pop(key)
        name = key[: -len("_json")]
        if raw is None:
            d[name] = None
            continue
        try:
            d[name] = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[Schema] Unparseable JSON in column {key}")
            d[name] = None
    return d


@contextmanager
def write_transaction(conn: sqlite3.Connection):
    """BEGIN IMMEDIATE ... COMMIT, rolled back on any error.

    IMMEDIATE takes the write lock up front so two writers never interleave
    their read-check-write sequences.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
