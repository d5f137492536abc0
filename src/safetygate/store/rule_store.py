"""
RuleStore -- versioned rule lifecycle backed by SQLite.

Lifecycle: DRAFT -> ACTIVE -> ARCHIVED. Versions are never deleted.

  create_rule     new definition + draft v1
  create_draft    next version, copying the latest logic/defaults
  update_draft    patch logic/defaults; NOT_DRAFT once activated
  activate        archive the current active version and activate this one
                  in ONE transaction; CONCURRENT_ACTIVATION_CONFLICT on a race
  active_rule_set the rule versions the engine evaluates; fail-closed when empty

Every change_reason is mandatory. Every lifecycle event is appended to
rule_audit.

Usage:
    store = RuleStore(Path("data/safetygate.db"))
    rule, draft = store.create_rule(
        key="CHEST_PAIN", title="Brustschmerz", kind="intake_safety",
        actor="dr.meyer", change_reason="Initial red flag",
        logic={"type": "keyword", "keywords": ["brustschmerz"]},
        defaults={"level_default": "B"},
    )
    store.activate(draft.id, change_reason="Reviewed by safety board", actor="dr.meyer")
    rules = store.active_rule_set("intake_safety")
"""

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path

from ..engine.catalog import BUILTIN_RULES
from ..engine.logic import dump_logic, parse_logic
from ..engine.models import FINDING_ACTIONS, RuleDefaults, RuleDefinition, RuleStatus, RuleVersion
from ..engine.severity import SCALES, scale_for_kind
from ..errors import (
    ConcurrentActivationConflict,
    NoRulesAvailableError,
    NotDraftError,
    NotFoundError,
    RuleValidationError,
)
from ..validators import (
    MAX_TITLE_LENGTH,
    validate_change_reason,
    validate_in_choices,
    validate_length,
    validate_logic_size,
    validate_not_empty,
    validate_rule_key,
)
from .schema import DEFAULT_DB_PATH, dict_from_row, get_connection, initialize_schema, utc_now, write_transaction

logger = logging.getLogger(__name__)

SEED_ACTOR = "system"

VERSION_SELECT = """
    SELECT v.*, d.key AS rule_key, d.title AS title, d.kind AS kind
    FROM rule_versions v
    JOIN rule_definitions d ON d.id = v.rule_id
"""


class AuditEvent:
    DRAFT_CREATED = "draft_created"
    DRAFT_UPDATED = "draft_updated"
    ACTIVATED = "activated"


@dataclass
class RuleSummary:
    """A rule definition with its active and latest versions."""

    definition: RuleDefinition
    active_version: RuleVersion | None
    latest_version: RuleVersion | None

    def to_dict(self) -> dict:
        return {
            **self.definition.to_dict(),
            "active_version": self.active_version.to_dict() if self.active_version else None,
            "latest_version": self.latest_version.to_dict() if self.latest_version else None,
        }


def _clean_logic(logic: dict | None) -> dict | None:
    if logic is None:
        return None
    validate_logic_size(logic)
    return dump_logic(parse_logic(logic))


def _clean_defaults(defaults: dict | RuleDefaults | None, kind: str) -> RuleDefaults | None:
    if defaults is None:
        return None
    if isinstance(defaults, RuleDefaults):
        defaults = {"level_default": defaults.level_default, "action_default": defaults.action_default}
    if not isinstance(defaults, dict):
        raise RuleValidationError("defaults must be a JSON object")
    unknown = set(defaults) - {"level_default", "action_default"}
    if unknown:
        raise RuleValidationError(f"Unknown defaults fields: {sorted(unknown)}")
    scale = scale_for_kind(kind)
    level = validate_in_choices(
        str(defaults.get("level_default") or ""), scale.levels, "level_default"
    )
    action = defaults.get("action_default")
    if action is not None:
        action = validate_in_choices(str(action), FINDING_ACTIONS, "action_default")
    return RuleDefaults(level_default=level, action_default=action)


def _dump_defaults(defaults: RuleDefaults | None) -> str | None:
    if defaults is None:
        return None
    return json.dumps({"level_default": defaults.level_default, "action_default": defaults.action_default})


def _row_to_version(d: dict) -> RuleVersion:
    defaults = d.get("defaults")
    return RuleVersion(
        id=d["id"],
        rule_id=d["rule_id"],
        version=d["version"],
        status=d["status"],
        logic=d.get("logic"),
        defaults=RuleDefaults(**defaults) if isinstance(defaults, dict) and defaults.get("level_default") else None,
        change_reason=d["change_reason"],
        created_by=d["created_by"],
        created_at=d["created_at"],
        rule_key=d.get("rule_key", ""),
        title=d.get("title", ""),
        kind=d.get("kind", ""),
        activation_reason=d.get("activation_reason", ""),
        activated_by=d.get("activated_by", ""),
        activated_at=d.get("activated_at", ""),
        archived_at=d.get("archived_at", ""),
        base_revision=d.get("base_revision") or 0,
    )


def _row_to_definition(d: dict) -> RuleDefinition:
    return RuleDefinition(
        id=d["id"],
        key=d["key"],
        title=d["title"],
        kind=d["kind"],
        created_by=d["created_by"],
        created_at=d["created_at"],
        active_revision=d["active_revision"],
    )


class RuleStore:
    """SQLite-backed rule definitions and their immutable version history."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self._db_path = db_path
        initialize_schema(db_path)

    # =========================================================================
    # READS
    # =========================================================================

    def get_rule(self, rule_ref: str) -> RuleDefinition:
        """Look up a rule by id or key."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM rule_definitions WHERE id = ? OR key = ?",
                (rule_ref, rule_ref),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise NotFoundError(f"Rule not found: {rule_ref}")
        return _row_to_definition(dict_from_row(row))

    def list_rules(self, kind: str | None = None) -> list[RuleSummary]:
        """All rules (optionally of one kind) with their active version, ordered by key."""
        conn = get_connection(self._db_path)
        try:
            if kind:
                rows = conn.execute(
                    "SELECT * FROM rule_definitions WHERE kind = ? ORDER BY key", (kind,)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM rule_definitions ORDER BY key").fetchall()
            summaries = []
            for row in rows:
                definition = _row_to_definition(dict_from_row(row))
                active = conn.execute(
                    f"{VERSION_SELECT} WHERE v.rule_id = ? AND v.status = ?",
                    (definition.id, RuleStatus.ACTIVE),
                ).fetchone()
                latest = conn.execute(
                    f"{VERSION_SELECT} WHERE v.rule_id = ? ORDER BY v.version DESC LIMIT 1",
                    (definition.id,),
                ).fetchone()
                summaries.append(RuleSummary(
                    definition=definition,
                    active_version=_row_to_version(dict_from_row(active)) if active else None,
                    latest_version=_row_to_version(dict_from_row(latest)) if latest else None,
                ))
            return summaries
        finally:
            conn.close()

    def get_history(self, rule_ref: str) -> list[RuleVersion]:
        """Every version of a rule, newest first."""
        rule = self.get_rule(rule_ref)
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                f"{VERSION_SELECT} WHERE v.rule_id = ? ORDER BY v.version DESC",
                (rule.id,),
            ).fetchall()
            return [_row_to_version(dict_from_row(r)) for r in rows]
        finally:
            conn.close()

    def get_version(self, version_id: str) -> RuleVersion:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(f"{VERSION_SELECT} WHERE v.id = ?", (version_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            raise NotFoundError(f"Rule version not found: {version_id}")
        return _row_to_version(dict_from_row(row))

    def latest_version(self, rule_ref: str) -> RuleVersion | None:
        history = self.get_history(rule_ref)
        return history[0] if history else None

    def active_rule_set(self, kind: str) -> list[RuleVersion]:
        """Active versions of every rule of this kind, in key order.

        Raises NoRulesAvailableError when there are none or the store cannot
        be read. Rules whose stored logic is unusable are still returned; the
        evaluator reports them as inconclusive.
        """
        if kind not in SCALES:
            raise RuleValidationError(f"Unknown rule kind: {kind}")
        try:
            conn = get_connection(self._db_path)
            try:
                rows = conn.execute(
                    f"{VERSION_SELECT} WHERE d.kind = ? AND v.status = ? ORDER BY d.key",
                    (kind, RuleStatus.ACTIVE),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"[RuleStore] Failed to load {kind} rule set: {e}")
            raise NoRulesAvailableError(f"Rule set could not be loaded: {e}") from e

        rules = [_row_to_version(dict_from_row(r)) for r in rows]
        if not rules:
            raise NoRulesAvailableError(f"No active {kind} rules")
        return rules

    # =========================================================================
    # WRITES
    # =========================================================================

    def create_rule(
        self,
        key: str,
        title: str,
        kind: str,
        actor: str,
        change_reason: str,
        logic: dict | None = None,
        defaults: dict | RuleDefaults | None = None,
    ) -> tuple[RuleDefinition, RuleVersion]:
        """Create a rule definition with draft version 1."""
        key = validate_rule_key(key)
        title = validate_length(validate_not_empty(title, "title"), "title", max_length=MAX_TITLE_LENGTH)
        validate_in_choices(kind, tuple(SCALES), "kind")
        actor = validate_not_empty(actor, "actor")
        change_reason = validate_change_reason(change_reason)
        clean_logic = _clean_logic(logic)
        clean_defaults = _clean_defaults(defaults, kind)

        now = utc_now()
        definition = RuleDefinition(
            id=str(uuid.uuid4()), key=key, title=title, kind=kind,
            created_by=actor, created_at=now,
        )
        conn = get_connection(self._db_path)
        try:
            with write_transaction(conn):
                conn.execute(
                    """INSERT INTO rule_definitions
                       (id, key, title, kind, created_by, created_at, active_revision)
                       VALUES (?, ?, ?, ?, ?, ?, 0)""",
                    (definition.id, key, title, kind, actor, now),
                )
                version_id = self._insert_version(
                    conn, definition.id, 1, clean_logic, clean_defaults, change_reason, actor, now
                )
        except sqlite3.IntegrityError as e:
            raise RuleValidationError(f"Rule key already exists: {key}") from e
        finally:
            conn.close()

        logger.info(f"[RuleStore] Created rule {key} ({kind}) by {actor}")
        return definition, self.get_version(version_id)

    def create_draft(self, rule_ref: str, change_reason: str, actor: str) -> RuleVersion:
        """Create the next version as a draft, copying the latest logic and defaults."""
        change_reason = validate_change_reason(change_reason)
        actor = validate_not_empty(actor, "actor")
        rule = self.get_rule(rule_ref)

        conn = get_connection(self._db_path)
        try:
            with write_transaction(conn):
                latest = conn.execute(
                    "SELECT * FROM rule_versions WHERE rule_id = ? ORDER BY version DESC LIMIT 1",
                    (rule.id,),
                ).fetchone()
                base_revision = conn.execute(
                    "SELECT active_revision FROM rule_definitions WHERE id = ?", (rule.id,)
                ).fetchone()["active_revision"]
                latest = dict_from_row(latest) if latest else {}
                defaults = latest.get("defaults")
                version_id = self._insert_version(
                    conn,
                    rule.id,
                    latest.get("version", 0) + 1,
                    latest.get("logic"),
                    RuleDefaults(**defaults) if isinstance(defaults, dict) and defaults.get("level_default") else None,
                    change_reason,
                    actor,
                    utc_now(),
                    base_revision,
                )
        finally:
            conn.close()

        draft = self.get_version(version_id)
        logger.info(f"[RuleStore] Draft {rule.key} v{draft.version} created by {actor}")
        return draft

    def update_draft(
        self,
        version_id: str,
        actor: str,
        logic: dict | None = None,
        defaults: dict | RuleDefaults | None = None,
    ) -> RuleVersion:
        """Patch a draft's logic and/or defaults. Both are validated before any write."""
        actor = validate_not_empty(actor, "actor")
        current = self.get_version(version_id)
        if not current.is_draft:
            raise NotDraftError(f"Version {version_id} is {current.status}, not draft")
        if logic is None and defaults is None:
            raise RuleValidationError("Nothing to update: provide logic and/or defaults")
        clean_logic = _clean_logic(logic)
        clean_defaults = _clean_defaults(defaults, current.kind)

        conn = get_connection(self._db_path)
        try:
            with write_transaction(conn):
                cursor = conn.execute(
                    """UPDATE rule_versions
                       SET logic_json = COALESCE(?, logic_json),
                           defaults_json = COALESCE(?, defaults_json)
                       WHERE id = ? AND status = ?""",
                    (
                        json.dumps(clean_logic) if clean_logic is not None else None,
                        _dump_defaults(clean_defaults),
                        version_id,
                        RuleStatus.DRAFT,
                    ),
                )
                if cursor.rowcount == 0:
                    raise NotDraftError(f"Version {version_id} was activated concurrently")
                self._audit(conn, current.rule_id, version_id, AuditEvent.DRAFT_UPDATED, actor, "")
        finally:
            conn.close()

        logger.info(f"[RuleStore] Draft {current.rule_key} v{current.version} updated by {actor}")
        return self.get_version(version_id)

    def activate(
        self,
        version_id: str,
        change_reason: str,
        actor: str,
        expected_revision: int | None = None,
    ) -> RuleVersion:
        """Archive the active version and activate this draft as one transaction.

        The rule's active_revision must still equal the one the draft was
        created from, so two drafts of the same active version cannot both go
        live one after the other. ``expected_revision`` replaces that check
        with the revision the caller last saw, for a draft that was reviewed
        against the newer active version.
        """
        change_reason = validate_change_reason(change_reason)
        actor = validate_not_empty(actor, "actor")

        conn = get_connection(self._db_path)
        try:
            with write_transaction(conn):
                row = conn.execute(f"{VERSION_SELECT} WHERE v.id = ?", (version_id,)).fetchone()
                if row is None:
                    raise NotFoundError(f"Rule version not found: {version_id}")
                version = _row_to_version(dict_from_row(row))
                if not version.is_draft:
                    raise NotDraftError(f"Version {version_id} is {version.status}, not draft")
                if version.logic is None or version.defaults is None:
                    raise RuleValidationError("Cannot activate a draft without logic and defaults")
                parse_logic(version.logic)

                revision = conn.execute(
                    "SELECT active_revision FROM rule_definitions WHERE id = ?",
                    (version.rule_id,),
                ).fetchone()["active_revision"]
                expected = version.base_revision if expected_revision is None else expected_revision
                if expected != revision:
                    raise ConcurrentActivationConflict(
                        f"Rule {version.rule_key} changed (revision {revision}, "
                        f"expected {expected}); reload and retry"
                    )

                now = utc_now()
                conn.execute(
                    """UPDATE rule_versions SET status = ?, archived_at = ?
                       WHERE rule_id = ? AND status = ?""",
                    (RuleStatus.ARCHIVED, now, version.rule_id, RuleStatus.ACTIVE),
                )
                conn.execute(
                    """UPDATE rule_versions
                       SET status = ?, activation_reason = ?, activated_by = ?, activated_at = ?
                       WHERE id = ? AND status = ?""",
                    (RuleStatus.ACTIVE, change_reason, actor, now, version_id, RuleStatus.DRAFT),
                )
                bumped = conn.execute(
                    """UPDATE rule_definitions SET active_revision = active_revision + 1
                       WHERE id = ? AND active_revision = ?""",
                    (version.rule_id, revision),
                )
                if bumped.rowcount != 1:
                    raise ConcurrentActivationConflict(
                        f"Rule {version.rule_key} was activated concurrently; retry"
                    )
                self._audit(conn, version.rule_id, version_id, AuditEvent.ACTIVATED, actor, change_reason)
        except sqlite3.IntegrityError as e:
            raise ConcurrentActivationConflict(
                f"Another version became active for this rule: {e}"
            ) from e
        except sqlite3.OperationalError as e:
            if "locked" in str(e).lower() or "busy" in str(e).lower():
                raise ConcurrentActivationConflict(f"Rule store busy, retry activation: {e}") from e
            raise
        finally:
            conn.close()

        activated = self.get_version(version_id)
        logger.info(
            f"[RuleStore] Activated {activated.rule_key} v{activated.version} by {actor}: {change_reason}"
        )
        return activated

    def seed_catalog(self, actor: str = SEED_ACTOR) -> int:
        """Create and activate every built-in rule whose key is not yet present."""
        conn = get_connection(self._db_path)
        try:
            existing = {r["key"] for r in conn.execute("SELECT key FROM rule_definitions").fetchall()}
        finally:
            conn.close()

        seeded = 0
        for entry in BUILTIN_RULES:
            if entry.key in existing:
                continue
            _, draft = self.create_rule(
                key=entry.key,
                title=entry.title,
                kind=entry.kind,
                actor=actor,
                change_reason="Built-in catalog",
                logic=entry.logic,
                defaults=RuleDefaults(level_default=entry.level, action_default=entry.action),
            )
            self.activate(draft.id, change_reason="Built-in catalog", actor=actor)
            seeded += 1
        if seeded:
            logger.info(f"[RuleStore] Seeded {seeded} built-in rules")
        return seeded

    def audit_log(self, rule_ref: str) -> list[dict]:
        rule = self.get_rule(rule_ref)
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM rule_audit WHERE rule_id = ? ORDER BY created_at, rowid",
                (rule.id,),
            ).fetchall()
            return [dict_from_row(r) for r in rows]
        finally:
            conn.close()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _insert_version(
        self,
        conn: sqlite3.Connection,
        rule_id: str,
        version: int,
        logic: dict | None,
        defaults: RuleDefaults | None,
        change_reason: str,
        actor: str,
        now: str,
        base_revision: int = 0,
    ) -> str:
        version_id = str(uuid.uuid4())
        conn.execute(
            """INSERT INTO rule_versions
               (id, rule_id, version, status, logic_json, defaults_json,
                change_reason, created_by, created_at, base_revision)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                version_id,
                rule_id,
                version,
                RuleStatus.DRAFT,
                json.dumps(logic) if logic is not None else None,
                _dump_defaults(defaults),
                change_reason,
                actor,
                now,
                base_revision,
            ),
        )
        self._audit(conn, rule_id, version_id, AuditEvent.DRAFT_CREATED, actor, change_reason)
        return version_id

    def _audit(
        self,
        conn: sqlite3.Connection,
        rule_id: str,
        version_id: str,
        event: str,
        actor: str,
        reason: str,
    ) -> None:
        conn.execute(
            """INSERT INTO rule_audit (id, rule_id, version_id, event, actor, reason, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (str(uuid.uuid4()), rule_id, version_id, event, actor, reason, utc_now()),
        )
