"""Deterministic intake safety evaluator.

Evaluates patient intake answers against a service's safety ruleset
and produces a triage outcome. All decisions are:
- Deterministic (same answers and ruleset = same result)
- Explainable (every triggered rule is reported with the values it read)
- Auditable (records ruleset version and hash)

Outcome precedence is by outcome kind only:
block_emergency > needs_more_info > allow. Risk tier orders the
triggered rules and sets the critical flag but never changes the outcome.
"""

from collections.abc import Mapping
from datetime import date
from typing import Any

from intake_safety.rules.matcher import all_conditions_hold, read_condition_value
from intake_safety.rules.models import (
    RiskTier,
    SafetyEvaluationResult,
    SafetyOutcome,
    SafetyRule,
    ServiceRuleSet,
    TriggeredRule,
)
from intake_safety.rules.registry import RuleRegistry, get_rule_registry
from intake_safety.utils.time import utc_today

OUTCOME_TITLES: dict[SafetyOutcome, str] = {
    SafetyOutcome.ALLOW: "You're all set!",
    SafetyOutcome.NEEDS_MORE_INFO: "We need a bit more information",
    SafetyOutcome.BLOCK_EMERGENCY: "We can't help with this online",
}

DEFAULT_MESSAGES: dict[SafetyOutcome, str] = {
    SafetyOutcome.ALLOW: "Your request is ready to proceed.",
    SafetyOutcome.NEEDS_MORE_INFO: (
        "Please answer a few more questions so our doctor can review your request safely."
    ),
    SafetyOutcome.BLOCK_EMERGENCY: (
        "Your answers suggest you need urgent care. Please call 000 or go to "
        "your nearest emergency department."
    ),
}


def evaluate_safety(
    answers: Mapping[str, Any],
    rule_set: ServiceRuleSet,
    as_of: date | None = None,
) -> SafetyEvaluationResult:
    """Evaluate intake answers against a service ruleset.

    This is the core safety function. Every rule is evaluated (there
    is no first-match shortcut) and the most severe outcome wins.

    Args:
        answers: Intake answers snapshot (not modified)
        rule_set: Ruleset for the intake's service type
        as_of: Evaluation date for derived date values (defaults to today, UTC)

    Returns:
        SafetyEvaluationResult with outcome, triggered rules and follow-up questions
    """
    if as_of is None:
        as_of = utc_today()

    triggered = [
        _trigger(rule, answers, as_of)
        for rule in rule_set.rules
        if all_conditions_hold(rule.conditions, answers, as_of)
    ]

    # Highest tier first; list.sort is stable so definition order breaks ties
    triggered.sort(key=lambda t: t.risk_tier.rank, reverse=True)

    outcome = SafetyOutcome.ALLOW
    for rule in triggered:
        if rule.outcome.severity > outcome.severity:
            outcome = rule.outcome

    follow_up: list[str] = []
    if outcome == SafetyOutcome.NEEDS_MORE_INFO:
        for rule in triggered:
            if rule.outcome != SafetyOutcome.NEEDS_MORE_INFO:
                continue
            for question_id in rule.follow_up:
                if question_id not in follow_up:
                    follow_up.append(question_id)

    return SafetyEvaluationResult(
        outcome=outcome,
        triggered_rules=tuple(triggered),
        follow_up_questions=tuple(follow_up),
        critical_fired=any(t.risk_tier == RiskTier.CRITICAL for t in triggered),
        risk_tier=triggered[0].risk_tier if triggered else RiskTier.LOW,
        patient_title=OUTCOME_TITLES[outcome],
        patient_message=_patient_message(outcome, triggered, rule_set),
        service_type=rule_set.service_type,
        ruleset_version=rule_set.version,
        ruleset_hash=rule_set.ruleset_hash,
    )


def merge_answers(
    original_answers: Mapping[str, Any],
    follow_up_answers: Mapping[str, Any],
) -> dict[str, Any]:
    """Overlay follow-up answers on the original answers.

    Shallow merge: follow-up keys replace original keys of the same
    name, every other original key is kept. Neither input is modified.
    """
    return {**original_answers, **follow_up_answers}


def evaluate_with_follow_up(
    original_answers: Mapping[str, Any],
    follow_up_answers: Mapping[str, Any],
    rule_set: ServiceRuleSet,
    as_of: date | None = None,
) -> SafetyEvaluationResult:
    """Re-evaluate after the patient answered follow-up questions.

    Runs the full ruleset again on the merged answers. A rule that
    still holds (including any block_emergency rule whose fields were
    not changed) still fires.
    """
    merged = merge_answers(original_answers, follow_up_answers)
    return evaluate_safety(merged, rule_set, as_of)


class SafetyEngine:
    """Safety evaluator bound to a rule registry.

    Resolves the service type to its ruleset and runs the evaluation.
    An unknown service type raises RuleSetNotFoundError; it never
    defaults to allow.
    """

    def __init__(self, registry: RuleRegistry | None = None) -> None:
        """Initialize engine.

        Args:
            registry: Rule registry (defaults to the process-wide registry)
        """
        self._registry = registry

    @property
    def registry(self) -> RuleRegistry:
        """Get the registry, falling back to the published one."""
        if self._registry is None:
            return get_rule_registry()
        return self._registry

    def rule_set_for(self, service_type: str) -> ServiceRuleSet:
        return self.registry.get(service_type)

    def evaluate(
        self,
        service_type: str,
        answers: Mapping[str, Any],
        as_of: date | None = None,
    ) -> SafetyEvaluationResult:
        """Evaluate a first-pass intake submission."""
        return evaluate_safety(answers, self.rule_set_for(service_type), as_of)

    def reevaluate(
        self,
        service_type: str,
        original_answers: Mapping[str, Any],
        follow_up_answers: Mapping[str, Any],
        as_of: date | None = None,
    ) -> SafetyEvaluationResult:
        """Evaluate merged answers after a follow-up submission."""
        return evaluate_with_follow_up(
            original_answers,
            follow_up_answers,
            self.rule_set_for(service_type),
            as_of,
        )


def evaluate_for_service(
    service_type: str,
    answers: Mapping[str, Any],
    as_of: date | None = None,
) -> SafetyEvaluationResult:
    """Convenience function to evaluate against the published registry.

    Args:
        service_type: Service slug or alias
        answers: Intake answers snapshot
        as_of: Evaluation date for derived values

    Returns:
        SafetyEvaluationResult
    """
    return SafetyEngine().evaluate(service_type, answers, as_of)


def _trigger(rule: SafetyRule, answers: Mapping[str, Any], as_of: date) -> TriggeredRule:
    """Build the triggered-rule record, capturing the values the rule read."""
    field_values: dict[str, Any] = {}
    for condition in rule.conditions:
        for name in condition.source_fields():
            field_values[name] = answers.get(name)
        if condition.derived_from is not None:
            field_values[condition.field] = read_condition_value(condition, answers, as_of)

    return TriggeredRule(
        rule_id=rule.id,
        name=rule.name,
        description=rule.description,
        outcome=rule.outcome,
        risk_tier=rule.risk_tier,
        follow_up=rule.follow_up,
        doctor_note=rule.doctor_note,
        field_values=field_values,
    )


def _patient_message(
    outcome: SafetyOutcome,
    triggered: list[TriggeredRule],
    rule_set: ServiceRuleSet,
) -> str:
    """Message of the first triggered rule carrying the final outcome."""
    messages = {rule.id: rule.patient_message for rule in rule_set.rules}
    for rule in triggered:
        if rule.outcome == outcome and messages.get(rule.rule_id):
            return messages[rule.rule_id]
    return DEFAULT_MESSAGES[outcome]
