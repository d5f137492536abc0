"""
Evidence Evals -- provenance allowlist, cross-record rejection, dedupe idempotence.

A finding is only as trustworthy as the evidence it points to. These graders
pin down what can ever count as verified.
"""

import logging

import pytest

from safetygate.engine.evidence import ALLOWED_INTAKE_EVIDENCE_FIELDS, is_valid_evidence, sanitize
from safetygate.engine.models import EvidenceItem, TriggeredFinding


def _finding(*evidence: EvidenceItem, rule_id: str = "CHEST_PAIN_PROLONGED") -> TriggeredFinding:
    return TriggeredFinding(
        rule_id=rule_id,
        title="Brustschmerz seit >= 20 Minuten",
        severity="A",
        short_reason="duration",
        action="block",
        verified=bool(evidence),
        evidence=tuple(evidence),
    )


DURATION = "structured_data.history_of_present_illness.duration"


class TestIntakeAllowlist:
    """Eval: Is intake evidence restricted to allowlisted fields of this record?"""

    @pytest.mark.parametrize("field_path", sorted(ALLOWED_INTAKE_EVIDENCE_FIELDS))
    def test_allowlisted_paths_kept(self, field_path):
        item = EvidenceItem(source="intake", source_id="intake-1", excerpt="x", field_path=field_path)
        assert is_valid_evidence(item, "intake-1")

    @pytest.mark.parametrize("field_path", [
        "structured_data.notes",
        "structured_data.safety.red_flags",
        "structured_data.history_of_present_illness",
        "chief_complaint",
        None,
    ])
    def test_other_paths_dropped(self, field_path):
        item = EvidenceItem(source="intake", source_id="intake-1", excerpt="x", field_path=field_path)
        assert not is_valid_evidence(item, "intake-1")

    def test_other_record_dropped(self):
        item = EvidenceItem(source="intake", source_id="intake-2", excerpt="30 Minuten", field_path=DURATION)
        assert not is_valid_evidence(item, "intake-1")

    def test_blank_excerpt_dropped(self):
        item = EvidenceItem(source="chat", source_id="msg-1", excerpt="   ")
        assert not is_valid_evidence(item, "intake-1")

    def test_unknown_chat_message_dropped_when_ids_known(self):
        item = EvidenceItem(source="chat", source_id="msg-9", excerpt="Atemnot")
        assert is_valid_evidence(item, "intake-1")
        assert not is_valid_evidence(item, "intake-1", {"chat": {"msg-1"}})

    def test_unknown_source_dropped(self):
        item = EvidenceItem(source="email", source_id="x", excerpt="Atemnot")
        assert not is_valid_evidence(item, "intake-1")


class TestSanitize:
    """Eval: Does sanitize recompute verified and stay idempotent?"""

    def test_cross_record_item_removed_verified_from_rest(self):
        own = EvidenceItem(source="intake", source_id="intake-1", excerpt="30 Minuten", field_path=DURATION)
        foreign = EvidenceItem(source="intake", source_id="intake-2", excerpt="30 Minuten", field_path=DURATION)
        [finding] = sanitize([_finding(own, foreign)], "intake-1")
        assert finding.evidence == (own,)
        assert finding.verified is True
        assert finding.evidence_dropped == 1

    def test_all_invalid_keeps_finding_unverified(self):
        foreign = EvidenceItem(source="intake", source_id="intake-2", excerpt="30 Minuten", field_path=DURATION)
        [finding] = sanitize([_finding(foreign)], "intake-1")
        assert finding.evidence == ()
        assert finding.verified is False
        assert finding.rule_id == "CHEST_PAIN_PROLONGED"

    def test_duplicates_collapse_in_order(self):
        a = EvidenceItem(source="chat", source_id="msg-1", excerpt="Atemnot")
        b = EvidenceItem(source="chat", source_id="msg-2", excerpt="Atemnot")
        [finding] = sanitize([_finding(a, b, a)], "intake-1")
        assert finding.evidence == (a, b)
        assert finding.evidence_dropped == 0

    def test_sanitize_twice_is_noop(self):
        items = (
            EvidenceItem(source="chat", source_id="msg-1", excerpt="Atemnot"),
            EvidenceItem(source="chat", source_id="msg-1", excerpt="Atemnot"),
            EvidenceItem(source="intake", source_id="intake-1", excerpt="Atemnot", field_path="structured_data.notes"),
            EvidenceItem(source="intake", source_id="intake-1", excerpt="Atemnot", field_path="structured_data.chief_complaint"),
        )
        once = sanitize([_finding(*items), _finding()], "intake-1")
        twice = sanitize(once, "intake-1")
        assert twice == once

    def test_claimed_verified_without_evidence_is_reset(self):
        finding = TriggeredFinding(
            rule_id="X", title="X", severity="A", short_reason="x", action=None, verified=True,
        )
        assert sanitize([finding], "intake-1")[0].verified is False

    def test_dropped_evidence_is_logged(self, caplog):
        foreign = EvidenceItem(source="intake", source_id="intake-2", excerpt="x", field_path=DURATION)
        with caplog.at_level(logging.INFO, logger="safetygate.engine.evidence"):
            sanitize([_finding(foreign)], "intake-1")
        assert "INVALID_EVIDENCE" in caplog.text
