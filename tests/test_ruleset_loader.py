"""Tests for ruleset loading, integrity hashing and validation."""

import copy
from pathlib import Path
from typing import Any

import pytest

from intake_safety.rules.errors import ConfigurationError, MalformedConditionError
from intake_safety.rules.loader import (
    RulesetLoader,
    compute_ruleset_hash,
    load_ruleset,
    parse_ruleset,
)
from intake_safety.rules.models import (
    ConditionOperator,
    DerivedValueType,
    RiskTier,
    SafetyOutcome,
    ServiceRuleSet,
)

VALID_DOCUMENT: dict[str, Any] = {
    "id": "example",
    "version": "1.0.0",
    "description": "Example ruleset",
    "aliases": ["example-alias"],
    "follow_up_questions": [
        {"id": "detail", "label": "Tell us more", "type": "textarea"},
    ],
    "rules": [
        {
            "id": "needs_detail",
            "name": "Needs detail",
            "description": "Severe symptoms without detail",
            "when": {
                "all": [
                    {"field": "severity", "op": "equals", "value": "severe"},
                    {"field": "detail", "op": "is_absent"},
                ]
            },
            "then": {
                "outcome": "needs_more_info",
                "risk_tier": "moderate",
                "follow_up": ["detail"],
                "patient_message": "Please tell us more.",
            },
        },
    ],
}


def _document(**changes: Any) -> dict[str, Any]:
    document = copy.deepcopy(VALID_DOCUMENT)
    document.update(changes)
    return document


def _with_condition(condition: dict[str, Any]) -> dict[str, Any]:
    document = _document()
    document["rules"][0]["when"]["all"] = [condition]
    return document


class TestRulesetLoader:
    """Tests for loading packaged rulesets."""

    def test_load_ruleset_returns_rule_set_with_hash(self) -> None:
        rule_set = load_ruleset("medical-certificate.yaml")

        assert isinstance(rule_set, ServiceRuleSet)
        assert rule_set.service_type == "medical-certificate"
        assert rule_set.version == "1.0.0"
        assert len(rule_set.ruleset_hash) == 64  # SHA256 hex

    def test_shared_emergency_rules_come_first(self) -> None:
        """Included fragments are prepended in include order."""
        rule_set = load_ruleset("prescription.yaml")
        rule_ids = [rule.id for rule in rule_set.rules]

        assert rule_ids[0] == "emergency_chest_pain"
        assert rule_ids.index("emergency_self_harm") < rule_ids.index("rx_controlled_substance")

    def test_hash_is_stable_across_loads(self) -> None:
        first = load_ruleset("consult.yaml")
        second = load_ruleset("consult.yaml")

        assert first.ruleset_hash == second.ruleset_hash

    def test_compute_hash_is_deterministic(self) -> None:
        assert compute_ruleset_hash("a", "b") == compute_ruleset_hash("a", "b")
        assert compute_ruleset_hash("a", "b") != compute_ruleset_hash("a", "c")

    def test_hash_covers_included_fragment(self, tmp_path: Path) -> None:
        """Changing a shared fragment changes the including ruleset's hash."""
        (tmp_path / "shared").mkdir()
        fragment = tmp_path / "shared" / "common.yaml"
        fragment.write_text(
            "rules:\n"
            "  - id: common\n"
            "    when: {all: [{field: a, op: equals, value: true}]}\n"
            "    then: {outcome: block_emergency, risk_tier: critical}\n"
        )
        (tmp_path / "svc.yaml").write_text(
            "id: svc\nversion: '1'\ninclude: [shared/common.yaml]\n"
        )

        first = load_ruleset("svc.yaml", tmp_path)
        fragment.write_text(fragment.read_text().replace("value: true", "value: false"))
        second = load_ruleset("svc.yaml", tmp_path)

        assert first.ruleset_hash != second.ruleset_hash

    def test_loader_caches_ruleset(self) -> None:
        loader = RulesetLoader()

        first = loader.load("weight-management.yaml")
        second = loader.load("weight-management.yaml")

        assert first is second

    def test_loader_clear_cache(self) -> None:
        loader = RulesetLoader()

        first = loader.load("weight-management.yaml")
        loader.clear_cache()
        second = loader.load("weight-management.yaml")

        assert first is not second
        assert first == second

    def test_loader_list_rulesets_skips_shared_fragments(self) -> None:
        rulesets = RulesetLoader().list_rulesets()

        assert rulesets == [
            "consult.yaml",
            "medical-certificate.yaml",
            "prescription.yaml",
            "weight-management.yaml",
        ]

    def test_get_ruleset_info(self) -> None:
        info = RulesetLoader().get_ruleset_info("prescription.yaml")

        assert info["filename"] == "prescription.yaml"
        assert info["id"] == "prescription"
        assert info["version"] == "1.0.0"
        assert "repeat-prescription" in info["aliases"]
        assert info["rule_count"] > 0
        assert len(info["hash"]) == 64


class TestRulesetParsing:
    """Tests for turning a parsed document into rules."""

    def test_parse_valid_document(self) -> None:
        rule_set = parse_ruleset(_document(), ruleset_hash="abc", source="example.yaml")

        rule = rule_set.rules[0]
        assert rule.outcome == SafetyOutcome.NEEDS_MORE_INFO
        assert rule.risk_tier == RiskTier.MODERATE
        assert rule.follow_up == ("detail",)
        assert rule.conditions[1].operator == ConditionOperator.IS_ABSENT
        assert rule.conditions[1].value is None
        assert rule_set.aliases == ("example-alias",)
        assert rule_set.get_question("detail").type == "textarea"
        assert rule_set.ruleset_hash == "abc"

    def test_set_values_become_tuples(self) -> None:
        rule_set = parse_ruleset(
            _with_condition({"field": "reason", "op": "one_of", "value": ["a", "b"]})
        )

        assert rule_set.rules[0].conditions[0].value == ("a", "b")

    def test_parse_derived_condition(self) -> None:
        rule_set = parse_ruleset(
            _with_condition(
                {
                    "field": "bmi",
                    "op": "less_than",
                    "value": 27,
                    "derived_from": {"type": "bmi", "fields": ["weight", "height"]},
                }
            )
        )

        derived = rule_set.rules[0].conditions[0].derived_from
        assert derived.type == DerivedValueType.BMI
        assert derived.fields == ("weight", "height")

    def test_rule_without_conditions_is_loaded_inert(self) -> None:
        document = _document()
        document["rules"][0]["when"] = {"all": []}

        rule_set = parse_ruleset(document)

        assert rule_set.rules[0].conditions == ()

    def test_fragment_rules_precede_document_rules(self) -> None:
        fragment = {
            "rules": [
                {
                    "id": "shared_rule",
                    "when": {"all": [{"field": "x", "op": "equals", "value": True}]},
                    "then": {"outcome": "block_emergency", "risk_tier": "critical"},
                }
            ]
        }

        rule_set = parse_ruleset(_document(), fragments=[fragment])

        assert [rule.id for rule in rule_set.rules] == ["shared_rule", "needs_detail"]


class TestMalformedRulesets:
    """Authoring mistakes are rejected at load time."""

    @pytest.mark.parametrize(
        "condition",
        [
            {"field": "days", "op": "greater_than", "value": "five"},
            {"field": "days", "op": "greater_than", "value": True},
            {"field": "days", "op": "less_than"},
            {"field": "reason", "op": "one_of", "value": "work"},
            {"field": "reason", "op": "one_of", "value": []},
            {"field": "reason", "op": "not_one_of", "value": [["nested"]]},
            {"field": "reason", "op": "equals"},
            {"field": "reason", "op": "equals", "value": ["a"]},
            {"field": "reason", "op": "matches", "value": "a.*"},
            {"op": "equals", "value": "a"},
            {"field": "bmi", "op": "less_than", "value": 27,
             "derived_from": {"type": "bmi", "fields": ["weight"]}},
            {"field": "x", "op": "less_than", "value": 1,
             "derived_from": {"type": "zodiac", "fields": ["dob"]}},
        ],
    )
    def test_malformed_conditions_rejected(self, condition) -> None:
        with pytest.raises(MalformedConditionError) as exc_info:
            parse_ruleset(_with_condition(condition))

        assert exc_info.value.rule_id == "needs_detail"

    def test_any_block_rejected(self) -> None:
        document = _document()
        document["rules"][0]["when"] = {"any": [{"field": "a", "op": "is_present"}]}

        with pytest.raises(MalformedConditionError):
            parse_ruleset(document)

    @pytest.mark.parametrize(
        "then_changes",
        [
            {"outcome": "decline"},
            {"risk_tier": "medium"},
            {"follow_up": ["undeclared_question"]},
            {"follow_up": []},
        ],
    )
    def test_invalid_rule_outcomes_rejected(self, then_changes) -> None:
        document = _document()
        document["rules"][0]["then"].update(then_changes)

        with pytest.raises(ConfigurationError):
            parse_ruleset(document)

    def test_duplicate_rule_ids_rejected(self) -> None:
        document = _document()
        document["rules"].append(copy.deepcopy(document["rules"][0]))

        with pytest.raises(ConfigurationError, match="duplicate rule id"):
            parse_ruleset(document)

    def test_duplicate_question_ids_rejected(self) -> None:
        document = _document()
        document["follow_up_questions"].append({"id": "detail", "label": "Again"})

        with pytest.raises(ConfigurationError, match="duplicate follow-up question"):
            parse_ruleset(document)

    def test_select_question_needs_options(self) -> None:
        document = _document()
        document["follow_up_questions"][0]["type"] = "select"

        with pytest.raises(ConfigurationError, match="no options"):
            parse_ruleset(document)

    @pytest.mark.parametrize(
        "changes",
        [{"id": None}, {"version": None}, {"rules": []}, {"aliases": "single"}],
    )
    def test_invalid_document_rejected(self, changes) -> None:
        with pytest.raises(ConfigurationError):
            parse_ruleset(_document(**changes))

    def test_missing_file_raises_configuration_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_ruleset("missing.yaml", tmp_path)

    def test_invalid_yaml_raises_configuration_error(self, tmp_path: Path) -> None:
        (tmp_path / "broken.yaml").write_text("id: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_ruleset("broken.yaml", tmp_path)

    def test_include_outside_rulesets_dir_rejected(self, tmp_path: Path) -> None:
        rulesets_dir = tmp_path / "rulesets"
        rulesets_dir.mkdir()
        (tmp_path / "outside.yaml").write_text("rules: []\n")
        (rulesets_dir / "svc.yaml").write_text(
            "id: svc\nversion: '1'\ninclude: [../outside.yaml]\n"
        )

        with pytest.raises(ConfigurationError, match="outside the rulesets directory"):
            load_ruleset("svc.yaml", rulesets_dir)
