"""
Engine Evals -- rule grammar, matchers, value parsers, evaluation order.

CODE-BASED graders: the engine is pure, so every check here is deterministic
and needs no database.
"""

import pytest

from safetygate.engine.evaluator import evaluate, ruleset_fingerprint
from safetygate.engine.logic import parse_logic
from safetygate.engine.matchers import (
    find_denial,
    make_excerpt,
    parse_count,
    parse_duration_minutes,
    parse_number,
    run_matcher,
)
from safetygate.engine.models import RuleDefaults
from safetygate.engine.severity import CONTENT_SCALE, INTAKE_SCALE, RuleKind
from safetygate.errors import ErrorCode, NoRulesAvailableError, RuleValidationError


class TestRuleGrammar:
    """Eval: Is malformed logic rejected before it can reach evaluation?"""

    def test_keyword_terms_are_normalized(self):
        matcher = parse_logic({"type": "keyword", "keywords": ["  Prescribe ", "prescribe", "Dosage"]})
        assert matcher.keywords == ["prescribe", "dosage"]

    @pytest.mark.parametrize("logic", [
        {"type": "regex", "pattern": ".*"},
        {"type": "keyword", "keywords": []},
        {"type": "keyword", "keywords": ["x"], "eval": "os.system('x')"},
        {"type": "numeric_range", "field": "riskScore"},
        {"type": "numeric_range", "field": "riskScore", "min_value": 10, "max_value": 1},
        {"type": "contradiction", "first": ["low risk"], "second": ["LOW RISK"]},
        {"type": "keyword", "keywords": ["  "]},
        ["not", "an", "object"],
    ])
    def test_malformed_logic_rejected(self, logic):
        with pytest.raises(RuleValidationError) as exc:
            parse_logic(logic)
        assert exc.value.code == ErrorCode.VALIDATION_ERROR

    def test_unknown_source_rejected(self):
        with pytest.raises(RuleValidationError):
            parse_logic({"type": "keyword", "keywords": ["x"], "sources": ["email"]})


class TestValueParsers:
    """Eval: Do free-text values parse the way clinicians write them?"""

    @pytest.mark.parametrize("raw,expected", [
        ("30 Minuten", 30.0),
        ("2 Stunden", 120.0),
        ("1,5 h", 90.0),
        ("seit einer halben Stunde", 30.0),
        ("half an hour", 30.0),
        ("3 days", 4320.0),
        ("45", 45.0),
        (25, 25.0),
    ])
    def test_duration_minutes(self, raw, expected):
        assert parse_duration_minutes(raw) == expected

    @pytest.mark.parametrize("raw", ["seit gestern abend", "", None, True, {"value": 3}])
    def test_unparseable_duration_is_none(self, raw):
        assert parse_duration_minutes(raw) is None

    def test_number_accepts_decimal_comma(self):
        assert parse_number("Score 7,5 von 10") == 7.5
        assert parse_number(False) is None

    def test_count_ignores_blank_items(self):
        assert parse_count(["a", " ", "b"]) == 2.0
        assert parse_count("one item") == 1.0
        assert parse_count(3) is None

    def test_excerpt_window_marks_truncation(self):
        text = "x" * 100 + "Brustschmerz" + "y" * 100
        excerpt = make_excerpt(text, 100, 112)
        assert excerpt.startswith("...") and excerpt.endswith("...")
        assert "Brustschmerz" in excerpt


class TestMatchers:
    """Eval: Does each matcher fire exactly when it should, with evidence?"""

    def test_keyword_evidence_points_at_field(self, make_intake):
        matcher = parse_logic({"type": "keyword", "keywords": ["atemnot"]})
        subject = make_intake(structured_data={"chief_complaint": "Starke Atemnot beim Gehen"})
        hits = run_matcher(matcher, subject)
        assert len(hits) == 1
        item = hits[0].evidence
        assert item.source == "intake"
        assert item.source_id == "intake-1"
        assert item.field_path == "structured_data.chief_complaint"
        assert "Atemnot" in item.excerpt

    def test_unless_keywords_suppress_negated_block(self, make_intake):
        matcher = parse_logic({
            "type": "keyword",
            "keywords": ["brustschmerz"],
            "unless_keywords": ["kein brustschmerz"],
        })
        subject = make_intake(chat=["Ich habe kein Brustschmerz, nur Husten."])
        assert run_matcher(matcher, subject) == []

    def test_denials_only_read_relevant_negatives(self, make_intake):
        matcher = parse_logic({"type": "keyword", "keywords": ["atemnot"], "denials": ["Keine Atemnot"]})
        assert matcher.denials == ["keine atemnot"]
        in_chat = make_intake(chat=["Keine Atemnot"])
        assert find_denial(matcher, in_chat) is None
        listed = make_intake(structured_data={"relevant_negatives": ["Fieber", "keine Atemnot"]})
        assert find_denial(matcher, listed) == "keine atemnot"

    def test_denials_only_on_keyword_rules(self, make_intake):
        matcher = parse_logic({"type": "numeric_range", "field": "riskScore", "max_value": 100})
        assert find_denial(matcher, make_intake(structured_data={"relevant_negatives": ["x"]})) is None

    def test_whole_word_does_not_match_inside_words(self, make_report):
        matcher = parse_logic({"type": "keyword", "keywords": ["cure"], "whole_word": True})
        assert run_matcher(matcher, make_report(summary="Keep your data secure.")) == []
        assert len(run_matcher(matcher, make_report(summary="This will cure it."))) == 1

    def test_required_absence_fires_without_evidence(self, make_report):
        matcher = parse_logic({
            "type": "keyword",
            "keywords": ["consult your doctor"],
            "presence_is_violation": False,
        })
        hits = run_matcher(matcher, make_report(summary="Drink water."))
        assert len(hits) == 1
        assert hits[0].evidence is None

    def test_co_occurrence_needs_signal_in_same_section(self, make_report):
        matcher = parse_logic({
            "type": "co_occurrence",
            "signals": ["poor_sleep"],
            "keywords": ["coffee"],
        })
        report = make_report(
            sleep=("Your sleep is short.", ["poor_sleep"], {}),
            nutrition=("Enjoy coffee in the morning.", [], {}),
        )
        assert run_matcher(matcher, report) == []

        report = make_report(sleep=("Try more coffee to stay alert.", ["poor_sleep"], {}))
        hits = run_matcher(matcher, report)
        assert [h.section_key for h in hits] == ["sleep"]

    def test_numeric_range_outside_bounds(self, make_report):
        matcher = parse_logic({"type": "numeric_range", "field": "riskScore", "min_value": 0, "max_value": 100})
        report = make_report(
            overview=("ok", [], {"riskScore": 42}),
            stress=("bad", [], {"riskScore": 140}),
        )
        hits = run_matcher(matcher, report)
        assert [h.section_key for h in hits] == ["stress"]
        assert hits[0].evidence.field_path == "scores.riskScore"

    def test_numeric_range_gated_by_required_keywords(self, make_intake):
        matcher = parse_logic({
            "type": "numeric_range",
            "field": "history_of_present_illness.duration",
            "parser": "duration_minutes",
            "min_value": 20,
            "fire_inside": True,
            "requires_keywords": ["brustschmerz"],
        })
        data = {"history_of_present_illness": {"duration": "45 Minuten"}}
        assert run_matcher(matcher, make_intake(structured_data=data)) == []
        hits = run_matcher(matcher, make_intake(structured_data=data, chat=["Brustschmerz links"]))
        assert len(hits) == 1

    def test_unparseable_value_is_skipped(self, make_intake):
        matcher = parse_logic({
            "type": "numeric_range", "field": "history_of_present_illness.duration",
            "parser": "duration_minutes", "min_value": 20, "fire_inside": True,
        })
        data = {"history_of_present_illness": {"duration": "weiss nicht"}}
        assert run_matcher(matcher, make_intake(structured_data=data)) == []

    def test_contradiction_excerpt_spans_both_terms(self, make_report):
        matcher = parse_logic({"type": "contradiction", "first": ["low risk"], "second": ["high risk"]})
        hits = run_matcher(matcher, make_report(summary="Overall low risk, yet a high risk profile."))
        assert len(hits) == 1
        assert "low risk, yet a high risk" in hits[0].evidence.excerpt

    def test_status_keys_are_not_patient_text(self, make_intake):
        matcher = parse_logic({"type": "keyword", "keywords": ["atemnot"]})
        subject = make_intake(structured_data={"safety": {"note": "Atemnot erkannt"}})
        assert run_matcher(matcher, subject) == []


class TestEvaluation:
    """Eval: Is evaluation deterministic and are rule failures contained?"""

    def _rules(self, make_rule):
        return [
            make_rule("SYNCOPE", {"type": "keyword", "keywords": ["ohnmacht"]}, "B"),
            make_rule("CHEST_PAIN", {"type": "keyword", "keywords": ["brustschmerz"]}, "B"),
            make_rule("DYSPNEA", {"type": "keyword", "keywords": ["atemnot"]}, "A"),
        ]

    def test_same_input_same_output(self, make_rule, make_intake):
        rules = self._rules(make_rule)
        subject = make_intake(
            structured_data={"chief_complaint": "Brustschmerz und Atemnot"},
            chat=["Gestern kurz Ohnmacht", "Atemnot wird schlimmer"],
        )
        first = evaluate(rules, subject)
        second = evaluate(list(rules), subject)
        assert first.findings == second.findings
        assert first.policy_version == second.policy_version

    def test_findings_sorted_by_rule_id(self, make_rule, make_intake):
        subject = make_intake(chat=["Ohnmacht, Brustschmerz, Atemnot"])
        ids = [f.rule_id for f in evaluate(self._rules(make_rule), subject).findings]
        assert ids == ["CHEST_PAIN", "DYSPNEA", "SYNCOPE"]

    def test_rule_order_does_not_change_fingerprint(self, make_rule):
        rules = self._rules(make_rule)
        assert ruleset_fingerprint(rules) == ruleset_fingerprint(list(reversed(rules)))
        bumped = rules[:2] + [make_rule("DYSPNEA", {"type": "keyword", "keywords": ["atemnot"]}, "A", version=2)]
        assert ruleset_fingerprint(rules) != ruleset_fingerprint(bumped)

    def test_empty_rule_set_refuses(self, make_intake):
        with pytest.raises(NoRulesAvailableError) as exc:
            evaluate([], make_intake())
        assert exc.value.code == ErrorCode.NO_RULES_AVAILABLE

    def test_broken_rule_is_inconclusive_others_run(self, make_rule, make_intake):
        broken = make_rule("BROKEN", None, "A")
        rules = [broken] + self._rules(make_rule)
        evaluation = evaluate(rules, make_intake(chat=["Atemnot"]))
        assert [r.rule_id for r in evaluation.inconclusive] == ["BROKEN"]
        assert [f.rule_id for f in evaluation.findings] == ["DYSPNEA"]
        assert evaluation.rules_evaluated == 4

    def test_level_off_scale_is_inconclusive(self, make_rule, make_intake):
        from dataclasses import replace

        rule = make_rule("DYSPNEA", {"type": "keyword", "keywords": ["atemnot"]}, "A")
        rule = replace(rule, defaults=RuleDefaults(level_default="critical"))
        evaluation = evaluate([rule], make_intake(chat=["Atemnot"]))
        assert evaluation.findings == []
        assert len(evaluation.inconclusive) == 1

    def test_content_hits_grouped_per_section(self, make_rule, make_report):
        rule = make_rule(
            "safety-no-medication-prescription",
            {"type": "keyword", "keywords": ["prescribe"]},
            "critical",
            kind=RuleKind.CONTENT_VALIDATION,
        )
        report = make_report(sleep="We prescribe melatonin.", stress="Doctors prescribe rest.")
        findings = evaluate([rule], report).findings
        assert [f.section_key for f in findings] == ["sleep", "stress"]
        assert all(f.verified for f in findings)


    def test_denied_symptom_still_fires_and_is_marked(self, make_rule, make_intake):
        rule = make_rule("CHEST_PAIN", {
            "type": "keyword", "keywords": ["brustschmerz"], "denials": ["kein brustschmerz"],
        }, "B")
        subject = make_intake(structured_data={
            "chief_complaint": "Heute starke Brustschmerzen",
            "relevant_negatives": ["Kein Brustschmerz in Ruhe"],
        })
        [finding] = evaluate([rule], subject).findings
        assert finding.contradicted is True
        assert "kein brustschmerz" in finding.short_reason
        assert len(finding.evidence) == 2

    def test_fallback_rule_only_reports_alone(self, make_rule, make_intake):
        rules = [
            make_rule("DYSPNEA", {"type": "keyword", "keywords": ["atemnot"]}, "A"),
            make_rule("UNCERTAIN", {"type": "keyword", "keywords": ["unklar"], "fallback": True}, "C"),
        ]
        alone = evaluate(rules, make_intake(chat=["Beginn unklar"]))
        assert [f.rule_id for f in alone.findings] == ["UNCERTAIN"]

        both = evaluate(rules, make_intake(chat=["Beginn unklar, jetzt Atemnot"]))
        assert [f.rule_id for f in both.findings] == ["DYSPNEA"]
        assert both.rules_evaluated == 2


class TestSeverityScales:
    """Eval: Do both scales reduce the same way?"""

    def test_worst_level_wins(self):
        assert INTAKE_SCALE.worst(["C", "A", "B"]) == "A"
        assert CONTENT_SCALE.worst(["info", "warning"]) == "warning"
        assert INTAKE_SCALE.worst([]) is None

    def test_status_mapping(self):
        assert [INTAKE_SCALE.status_for(x) for x in ("A", "B", "C", None)] == ["fail", "flag", "pass", "pass"]
        assert CONTENT_SCALE.status_for("critical") == "fail"
