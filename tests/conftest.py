"""Pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from datetime import date

import pytest
from fastapi.testclient import TestClient

from intake_safety.main import app
from intake_safety.rules.models import (
    ConditionOperator,
    FollowUpQuestion,
    RiskTier,
    RuleCondition,
    SafetyOutcome,
    SafetyRule,
    ServiceRuleSet,
)
from intake_safety.rules.registry import RuleRegistry, reset_rule_registry


@pytest.fixture
def as_of() -> date:
    """Fixed evaluation date so derived ages and durations are stable."""
    return date(2025, 6, 15)


@pytest.fixture
def make_rule() -> Callable[..., SafetyRule]:
    """Factory for in-memory safety rules."""

    def _make(
        rule_id: str,
        *conditions: RuleCondition,
        outcome: SafetyOutcome = SafetyOutcome.ALLOW,
        risk_tier: RiskTier = RiskTier.LOW,
        follow_up: tuple[str, ...] = (),
        patient_message: str = "",
    ) -> SafetyRule:
        return SafetyRule(
            id=rule_id,
            description=f"{rule_id} fired",
            conditions=tuple(conditions),
            outcome=outcome,
            risk_tier=risk_tier,
            follow_up=tuple(follow_up),
            patient_message=patient_message,
            doctor_note=f"note for {rule_id}",
        )

    return _make


@pytest.fixture
def make_rule_set() -> Callable[..., ServiceRuleSet]:
    """Factory for in-memory rule sets; every follow-up id gets a question."""

    def _make(*rules: SafetyRule, service_type: str = "test-service") -> ServiceRuleSet:
        question_ids: list[str] = []
        for rule in rules:
            for question_id in rule.follow_up:
                if question_id not in question_ids:
                    question_ids.append(question_id)

        return ServiceRuleSet(
            service_type=service_type,
            version="1.0.0",
            rules=tuple(rules),
            follow_up_questions=tuple(
                FollowUpQuestion(id=q, label=f"Tell us about {q}") for q in question_ids
            ),
            ruleset_hash="0" * 64,
        )

    return _make


@pytest.fixture
def scenario_rule_set(make_rule, make_rule_set) -> ServiceRuleSet:
    """Chest pain (block), short symptom duration (more info) and sudden onset (block)."""
    return make_rule_set(
        make_rule(
            "R1",
            RuleCondition("chest_pain", ConditionOperator.EQUALS, True),
            outcome=SafetyOutcome.BLOCK_EMERGENCY,
            risk_tier=RiskTier.CRITICAL,
            patient_message="Call 000 now.",
        ),
        make_rule(
            "R2",
            RuleCondition("symptom_duration_days", ConditionOperator.LESS_THAN, 3),
            outcome=SafetyOutcome.NEEDS_MORE_INFO,
            risk_tier=RiskTier.MODERATE,
            follow_up=("onset_detail",),
        ),
        make_rule(
            "R3",
            RuleCondition("onset_detail", ConditionOperator.EQUALS, "sudden"),
            outcome=SafetyOutcome.BLOCK_EMERGENCY,
            risk_tier=RiskTier.HIGH,
        ),
    )


@pytest.fixture(scope="session")
def packaged_registry() -> RuleRegistry:
    """Registry built from the rulesets shipped with the package."""
    return RuleRegistry.from_directory()


@pytest.fixture(scope="function")
def client() -> Generator[TestClient, None, None]:
    """Create FastAPI test client with a freshly loaded rule registry."""
    reset_rule_registry()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    reset_rule_registry()
