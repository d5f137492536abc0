"""
Scenario Evals -- end-to-end behavior of the built-in catalog through SafetyService.

Each test is one clinical or content situation a reviewer would recognise.
"""

from dataclasses import replace

import pytest

from safetygate.engine.evidence import sanitize
from safetygate.engine.models import EffectiveState, EvidenceItem
from safetygate.engine.severity import RuleKind
from safetygate.errors import ErrorCode, NoRulesAvailableError, OverrideReasonRequiredError
from safetygate.review.queue import QueueReason

DURATION_PATH = "structured_data.history_of_present_illness.duration"


def _intake(chief_complaint="", duration=None, notes=None, chat=(), **fields):
    data = {"chief_complaint": chief_complaint, **fields}
    if duration is not None:
        data["history_of_present_illness"] = {"duration": duration}
    if notes is not None:
        data["notes"] = notes
    return {
        "structured_data": data,
        "chat_messages": [{"id": f"msg-{i}", "content": c} for i, c in enumerate(chat)],
    }


def _report(*drafts, scores=None):
    return {
        "sections": [
            {"section_key": f"section-{i}", "draft": d, "scores": scores or {}}
            for i, d in enumerate(drafts)
        ]
    }


def _finding(view, rule_id):
    return next(f for f in view.decision.findings if f.rule_id == rule_id)


class TestContentScenarios:
    """Eval: Do generated reports with unsafe content fail validation?"""

    def test_contradictory_risk_statements(self, service):
        view = service.submit_record(
            "job-1", RuleKind.CONTENT_VALIDATION,
            _report("Your profile is low risk although the markers show high risk."),
        )
        finding = _finding(view, "plausibility-contradictory-risk-level")
        assert finding.severity == "critical"
        assert "low risk although the markers show high risk" in finding.evidence[0].excerpt
        assert view.decision.policy_result.status == "fail"
        assert view.queue.reasons == [QueueReason.VALIDATION_FAIL]

    def test_prescription_language(self, service):
        view = service.submit_record(
            "job-2", RuleKind.CONTENT_VALIDATION, _report("We prescribe 10mg medication before bed.")
        )
        finding = _finding(view, "safety-no-medication-prescription")
        assert finding.severity == "critical"
        assert view.decision.policy_result.status == "fail"
        data = view.to_dict()
        assert data["flags"][0]["rule_id"] == "safety-no-medication-prescription"
        assert data["summary"] == "Validation: FAIL (safety-no-medication-prescription)."

    def test_risk_score_out_of_bounds(self, service):
        view = service.submit_record(
            "job-3", RuleKind.CONTENT_VALIDATION, _report("Solid week.", scores={"riskScore": 130})
        )
        assert _finding(view, "out-of-bounds-risk-score").evidence[0].excerpt == "130"

    def test_clean_report_passes(self, service):
        view = service.submit_record(
            "job-4", RuleKind.CONTENT_VALIDATION, _report("Keep walking daily and sleep eight hours.")
        )
        assert view.decision.findings == []
        assert view.decision.policy_result.status == "pass"
        assert view.evaluation_state == "completed"


class TestIntakeScenarios:
    """Eval: Do intake red flags carry evidence from this record only?"""

    def test_prolonged_chest_pain_evidence(self, service):
        view = service.submit_record(
            "intake-3", RuleKind.INTAKE_SAFETY,
            _intake("Brustschmerz seit heute morgen", duration="30 Minuten"),
        )
        finding = _finding(view, "CHEST_PAIN_PROLONGED")
        assert finding.severity == "A"
        assert finding.verified is True
        [item] = finding.evidence
        assert item.source == "intake"
        assert item.field_path == DURATION_PATH
        assert item.source_id == "intake-3"
        assert view.effective.escalation_level == "A"
        assert view.queue.reasons == [QueueReason.SAFETY_BLOCK]

    def test_short_chest_pain_is_not_prolonged(self, service):
        view = service.submit_record(
            "intake-short", RuleKind.INTAKE_SAFETY, _intake("Brustschmerz", duration="10 Minuten")
        )
        assert [f.rule_id for f in view.decision.findings] == ["CHEST_PAIN"]
        assert view.effective.escalation_level == "B"

    def test_foreign_evidence_dropped_from_real_finding(self, service):
        view = service.submit_record(
            "intake-4", RuleKind.INTAKE_SAFETY, _intake("Brustschmerz", duration="30 Minuten")
        )
        finding = _finding(view, "CHEST_PAIN_PROLONGED")
        foreign = EvidenceItem(
            source="intake", source_id="intake-other", excerpt="45 Minuten", field_path=DURATION_PATH
        )
        tampered = replace(finding, evidence=finding.evidence + (foreign,))
        [cleaned] = sanitize([tampered], "intake-4")
        assert foreign not in cleaned.evidence
        assert cleaned.evidence == finding.evidence
        assert cleaned.verified is True

        [stripped] = sanitize([replace(finding, evidence=(foreign,))], "intake-4")
        assert stripped.verified is False

    @pytest.mark.parametrize("complaint, rule_id, level", [
        ("Keine Atemnot in Ruhe, aber beim Treppensteigen bekomme keine Luft", "SEVERE_DYSPNEA", "A"),
        ("Gestern kein Brustschmerz, heute starke Brustschmerzen", "CHEST_PAIN", "B"),
    ])
    def test_negation_does_not_hide_symptom_in_same_block(self, service, complaint, rule_id, level):
        view = service.submit_record("intake-mixed", RuleKind.INTAKE_SAFETY, _intake(complaint))
        finding = _finding(view, rule_id)
        assert finding.verified is True
        assert view.decision.policy_result.escalation_level == level

    def test_denied_symptom_is_still_reported(self, service):
        view = service.submit_record(
            "intake-neg", RuleKind.INTAKE_SAFETY, _intake("Husten", chat=["Ich habe keine Brustschmerzen."])
        )
        assert [f.rule_id for f in view.decision.findings] == ["CHEST_PAIN"]
        assert view.decision.summary == "Red Flags: Level B (CHEST_PAIN)."

    def test_chat_evidence_points_at_message(self, service):
        view = service.submit_record(
            "intake-chat", RuleKind.INTAKE_SAFETY, _intake("Kopfschmerz", chat=["Hallo", "Ich bin gestern umgekippt"])
        )
        [item] = _finding(view, "SYNCOPE").evidence
        assert (item.source, item.source_id) == ("chat", "msg-1")


class TestIntakeContradictions:
    """Eval: Is a symptom that is both reported and denied surfaced, not dropped?"""

    def test_relevant_negative_contradicts_reported_symptom(self, service):
        view = service.submit_record(
            "intake-contra", RuleKind.INTAKE_SAFETY,
            _intake("Atemnot beim Gehen", relevant_negatives=["keine Atemnot"]),
        )
        finding = _finding(view, "SEVERE_DYSPNEA")
        assert finding.contradicted is True
        result = view.to_dict()["policy_result"]
        assert result["contradictions_present"] is True
        assert result["escalation_level"] == "A"
        assert view.effective.escalation_level == "A"

    def test_denial_alone_still_escalates_to_b(self, service):
        view = service.submit_record(
            "intake-denied", RuleKind.INTAKE_SAFETY,
            _intake("Husten", relevant_negatives=["Kein Brustschmerz"]),
        )
        assert view.decision.policy_result.contradictions_present is True
        assert view.decision.policy_result.escalation_level == "B"
        assert view.queue.reasons == [QueueReason.SAFETY_FLAG]

    def test_no_denials_no_contradiction(self, service):
        view = service.submit_record(
            "intake-plain", RuleKind.INTAKE_SAFETY, _intake("Brustschmerz", relevant_negatives=["Kein Fieber"])
        )
        assert view.decision.policy_result.contradictions_present is False


class TestUncertainty:
    """Eval: Does the uncertainty rule only speak when no red flag fired?"""

    def test_uncertainties_alone_give_level_c(self, service):
        view = service.submit_record(
            "intake-unsure", RuleKind.INTAKE_SAFETY,
            _intake("Müdigkeit", uncertainties=["Beginn unklar", "Dauer unklar"]),
        )
        assert [f.rule_id for f in view.decision.findings] == ["UNCERTAINTY_HIGH"]
        assert view.decision.policy_result.escalation_level == "C"
        assert "Sicherheitsfragen" in view.decision.summary

    def test_red_flag_suppresses_uncertainty(self, service):
        view = service.submit_record(
            "intake-unsure-b", RuleKind.INTAKE_SAFETY,
            _intake("Brustschmerz", uncertainties=["Beginn unklar", "Dauer unklar"]),
        )
        assert view.decision.policy_result.triggered_rule_ids == ("CHEST_PAIN",)


class TestUnverifiedHardStop:
    """Eval: Is an unverified A held for a human and resolved only by an override?"""

    def _submit(self, service):
        return service.submit_record(
            "intake-6", RuleKind.INTAKE_SAFETY, _intake("Husten", notes="Seit gestern starke Atemnot")
        )

    def test_unverified_a_is_held(self, service):
        view = self._submit(service)
        finding = _finding(view, "SEVERE_DYSPNEA")
        assert finding.verified is False
        assert finding.evidence_dropped == 1
        assert view.decision.policy_result.escalation_level == "A"
        assert view.effective.state == EffectiveState.UNVERIFIED_CRITICAL
        assert view.effective.escalation_level is None
        assert view.queue.reasons == [QueueReason.SAFETY_UNKNOWN]

    def test_override_resolves_and_both_results_visible(self, service):
        self._submit(service)
        service.set_override("intake-6", "C", "Test override", "dr.meyer")

        data = service.read_record("intake-6").to_dict()
        assert data["policy_result"]["escalation_level"] == "A"
        assert data["effective_policy_result"]["escalation_level"] == "C"
        assert data["effective_policy_result"]["state"] == "overridden"
        override = data["policy_override"]
        assert override["reason"] == "Test override"
        assert override["created_by"] == "dr.meyer"
        assert override["created_at"]

        [entry] = service.override_history("intake-6")
        assert (entry.from_level, entry.to_level) == ("A", "C")

    def test_override_without_reason(self, service):
        self._submit(service)
        with pytest.raises(OverrideReasonRequiredError):
            service.set_override("intake-6", "C", "  ", "dr.meyer")
        assert service.read_record("intake-6").override is None


class TestFailClosedService:
    """Eval: Is "could not evaluate" kept apart from "no issues found"?"""

    def test_evaluate_without_rules(self, empty_service):
        with pytest.raises(NoRulesAvailableError):
            empty_service.evaluate(RuleKind.INTAKE_SAFETY, "intake-5", _intake("Husten"))

    def test_read_without_rules_is_failed_state(self, empty_service):
        view = empty_service.submit_record("intake-5", RuleKind.INTAKE_SAFETY, _intake("Husten"))
        data = view.to_dict()
        assert data["evaluation_state"] == "failed"
        assert data["error"]["code"] == ErrorCode.NO_RULES_AVAILABLE
        assert data["policy_result"] is None
        assert data["review"]["reasons"] == [QueueReason.SAFETY_UNKNOWN]

    def test_read_recomputes_with_new_active_version(self, service):
        service.submit_record("intake-7", RuleKind.INTAKE_SAFETY, _intake("Schwindel beim Aufstehen"))
        assert service.read_record("intake-7").decision.findings == []

        draft = service.rules.create_draft("SYNCOPE", "Add dizziness", "author")
        service.rules.update_draft(draft.id, "author", logic={
            "type": "keyword", "keywords": ["schwindel"], "sources": ["intake", "chat"],
        })
        service.rules.activate(draft.id, "Reviewed", "lead")

        view = service.read_record("intake-7")
        [finding] = view.decision.findings
        assert (finding.rule_id, finding.rule_version) == ("SYNCOPE", 2)


class TestSandbox:
    """Eval: Does the sandbox preview rules without side effects?"""

    def test_active_set_preview(self, service):
        result = service.sandbox(
            "Seit 30 Minuten Brustschmerz",
            structured_data={"history_of_present_illness": {"duration": "30 Minuten"}},
        )
        assert result.escalation_level == "A"
        assert "CHEST_PAIN_PROLONGED" in [f.rule_id for f in result.triggered_findings]

    def test_draft_preview_writes_nothing(self, service):
        draft = service.rules.create_draft("CHEST_PAIN", "Try 'druck'", "author")
        service.rules.update_draft(draft.id, "author", logic={"type": "keyword", "keywords": ["druck"]})
        audit_before = service.rules.audit_log("CHEST_PAIN")

        result = service.sandbox("Druck auf der Brust", rule_version_id=draft.id)

        assert [f.rule_id for f in result.triggered_findings] == ["CHEST_PAIN"]
        assert result.escalation_level == "B"
        assert service.rules.audit_log("CHEST_PAIN") == audit_before
        assert service.rules.get_version(draft.id).status == "draft"
        assert service.records.list_records() == []

    def test_inline_content_logic(self, service):
        result = service.sandbox(
            "Guaranteed results in a week.",
            kind=RuleKind.CONTENT_VALIDATION,
            logic={"type": "keyword", "keywords": ["guaranteed"]},
        )
        assert result.status == "fail"
        assert result.to_dict()["triggered_rules"][0]["rule_id"] == "inline"
