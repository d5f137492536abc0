"""
Evidence Provenance Validator -- decides which evidence can ever count as verified.

For every evidence item on every finding:

  intake          source_id must be the record being evaluated AND field_path
                  must be on ALLOWED_INTAKE_EVIDENCE_FIELDS
  chat            non-empty source_id (and a known message id, when known)
  report_section  non-empty source_id (and a known section key, when known)
  any source      non-empty excerpt

Surviving items are de-duplicated by (source, source_id, field_path, excerpt)
keeping first-seen order. A finding that loses all of its evidence is kept,
with verified=False: "a rule fired but its evidence was invalid" stays visible.

sanitize() is idempotent: running it on its own output changes nothing.

The allowlist is a versioned constant, not configuration. Widening it changes
what "verified" can mean and goes through code review.
"""

import logging
from dataclasses import replace
from typing import Mapping

from ..errors import ErrorCode
from .models import EvidenceItem, EvidenceSource, TriggeredFinding

logger = logging.getLogger(__name__)

EVIDENCE_ALLOWLIST_VERSION = "2024-06-01"

ALLOWED_INTAKE_EVIDENCE_FIELDS = frozenset({
    "structured_data.chief_complaint",
    "structured_data.history_of_present_illness.onset",
    "structured_data.history_of_present_illness.duration",
    "structured_data.history_of_present_illness.course",
    "structured_data.history_of_present_illness.associated_symptoms",
    "structured_data.relevant_negatives",
    "structured_data.uncertainties",
})


def _invalid_reason(
    item: EvidenceItem,
    record_id: str,
    known_source_ids: Mapping[str, set[str]] | None,
) -> str | None:
    """Why an item is invalid, or None when it is kept."""
    if not item.excerpt or not item.excerpt.strip():
        return "empty excerpt"
    if item.source == EvidenceSource.INTAKE:
        if item.source_id != record_id:
            return "intake evidence from another record"
        if item.field_path not in ALLOWED_INTAKE_EVIDENCE_FIELDS:
            return f"field_path {item.field_path!r} not allowlisted"
        return None
    if item.source in (EvidenceSource.CHAT, EvidenceSource.REPORT_SECTION):
        if not item.source_id:
            return "empty source_id"
        if known_source_ids is not None and item.source_id not in known_source_ids.get(item.source, ()):
            return f"unknown {item.source} id {item.source_id!r}"
        return None
    return f"unknown source {item.source!r}"


def is_valid_evidence(
    item: EvidenceItem,
    record_id: str,
    known_source_ids: Mapping[str, set[str]] | None = None,
) -> bool:
    return _invalid_reason(item, record_id, known_source_ids) is None


def sanitize(
    findings: list[TriggeredFinding],
    record_id: str,
    known_source_ids: Mapping[str, set[str]] | None = None,
) -> list[TriggeredFinding]:
    """Filter and de-duplicate evidence; recompute ``verified`` from what survives.

    ``known_source_ids`` maps chat/report_section to the ids that exist on the
    subject. When omitted, only the non-empty checks apply to those sources.
    """
    sanitized = []
    for finding in findings:
        kept: list[EvidenceItem] = []
        seen: set[tuple] = set()
        dropped = 0
        for item in finding.evidence:
            reason = _invalid_reason(item, record_id, known_source_ids)
            if reason is not None:
                dropped += 1
                logger.info(
                    f"[Evidence] {ErrorCode.INVALID_EVIDENCE} rule={finding.rule_id} "
                    f"record={record_id} source={item.source}: {reason}"
                )
                continue
            if item.dedupe_key in seen:
                continue
            seen.add(item.dedupe_key)
            kept.append(item)

        sanitized.append(replace(
            finding,
            evidence=tuple(kept),
            verified=bool(kept),
            evidence_dropped=finding.evidence_dropped + dropped,
        ))
    return sanitized
