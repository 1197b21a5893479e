"""Safety rule and evaluation result data models.

Rules are immutable configuration. Every container here is a frozen
dataclass holding tuples, so a loaded rule set can be shared across
concurrent evaluations without copying.
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class SafetyOutcome(str, Enum):
    """Triage outcome produced by a rule or by an evaluation."""

    ALLOW = "allow"  # Proceed to doctor review / payment
    NEEDS_MORE_INFO = "needs_more_info"  # Ask follow-up questions first
    BLOCK_EMERGENCY = "block_emergency"  # Stop and redirect to emergency care

    @property
    def severity(self) -> int:
        """Rank used for outcome precedence (higher wins)."""
        return OUTCOME_SEVERITY[self]


class RiskTier(str, Enum):
    """Risk classification attached to a rule.

    Used for ordering triggered rules and for the critical flag.
    Never changes outcome precedence.
    """

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Rank used for ordering (higher sorts first)."""
        return RISK_TIER_RANK[self]


OUTCOME_SEVERITY: dict[SafetyOutcome, int] = {
    SafetyOutcome.ALLOW: 1,
    SafetyOutcome.NEEDS_MORE_INFO: 2,
    SafetyOutcome.BLOCK_EMERGENCY: 3,
}

RISK_TIER_RANK: dict[RiskTier, int] = {
    RiskTier.LOW: 1,
    RiskTier.MODERATE: 2,
    RiskTier.HIGH: 3,
    RiskTier.CRITICAL: 4,
}


class ConditionOperator(str, Enum):
    """Operators for rule conditions (closed set)."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    ONE_OF = "one_of"
    NOT_ONE_OF = "not_one_of"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IS_PRESENT = "is_present"
    IS_ABSENT = "is_absent"


NUMERIC_OPERATORS = frozenset({
    ConditionOperator.GREATER_THAN,
    ConditionOperator.GREATER_THAN_OR_EQUAL,
    ConditionOperator.LESS_THAN,
    ConditionOperator.LESS_THAN_OR_EQUAL,
})

SET_OPERATORS = frozenset({
    ConditionOperator.ONE_OF,
    ConditionOperator.NOT_ONE_OF,
})

PRESENCE_OPERATORS = frozenset({
    ConditionOperator.IS_PRESENT,
    ConditionOperator.IS_ABSENT,
})


class DerivedValueType(str, Enum):
    """Values computed from one or more answers."""

    BMI = "bmi"  # [weight_kg, height_cm]
    AGE = "age"  # [date_of_birth]
    DURATION_DAYS = "duration_days"  # [start_date, end_date | "today"]
    COUNT = "count"  # [list_field]


DERIVED_FIELD_COUNTS: dict[DerivedValueType, int] = {
    DerivedValueType.BMI: 2,
    DerivedValueType.AGE: 1,
    DerivedValueType.DURATION_DAYS: 2,
    DerivedValueType.COUNT: 1,
}


@dataclass(frozen=True)
class DerivedFrom:
    """Source answers for a derived condition value."""

    type: DerivedValueType
    fields: tuple[str, ...]


@dataclass(frozen=True)
class RuleCondition:
    """A predicate over one (possibly derived) answer field."""

    field: str
    operator: ConditionOperator
    value: Any = None
    derived_from: DerivedFrom | None = None

    def source_fields(self) -> tuple[str, ...]:
        """Answer keys this condition reads."""
        if self.derived_from is not None:
            return tuple(f for f in self.derived_from.fields if f != "today")
        return (self.field,)


@dataclass(frozen=True)
class FollowUpOption:
    """A selectable answer for a follow-up question."""

    value: str
    label: str


@dataclass(frozen=True)
class FollowUpQuestion:
    """Additional question asked when a rule needs more information."""

    id: str
    label: str
    type: str = "text"
    description: str = ""
    options: tuple[FollowUpOption, ...] = ()
    required: bool = True


@dataclass(frozen=True)
class SafetyRule:
    """A named safety rule: all conditions must hold for it to fire."""

    id: str
    description: str
    conditions: tuple[RuleCondition, ...]
    outcome: SafetyOutcome
    risk_tier: RiskTier
    follow_up: tuple[str, ...] = ()
    name: str = ""
    patient_message: str = ""
    doctor_note: str = ""


@dataclass(frozen=True)
class ServiceRuleSet:
    """The versioned rules that apply to one service type."""

    service_type: str
    version: str
    rules: tuple[SafetyRule, ...]
    description: str = ""
    aliases: tuple[str, ...] = ()
    follow_up_questions: tuple[FollowUpQuestion, ...] = ()
    ruleset_hash: str = ""
    source: str = ""

    def get_question(self, question_id: str) -> FollowUpQuestion | None:
        """Look up a declared follow-up question by id."""
        for question in self.follow_up_questions:
            if question.id == question_id:
                return question
        return None


@dataclass(frozen=True)
class TriggeredRule:
    """Record of one rule firing during an evaluation."""

    rule_id: str
    description: str
    outcome: SafetyOutcome
    risk_tier: RiskTier
    follow_up: tuple[str, ...] = ()
    name: str = ""
    doctor_note: str = ""
    field_values: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        # Read-only snapshot, detached from the caller's answer lists
        snapshot = copy.deepcopy(dict(self.field_values))
        object.__setattr__(self, "field_values", MappingProxyType(snapshot))

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "description": self.description,
            "outcome": self.outcome.value,
            "risk_tier": self.risk_tier.value,
            "follow_up": list(self.follow_up),
            "doctor_note": self.doctor_note,
            "field_values": copy.deepcopy(dict(self.field_values)),
        }


@dataclass(frozen=True)
class SafetyEvaluationResult:
    """Aggregate verdict of one evaluation pass."""

    outcome: SafetyOutcome
    triggered_rules: tuple[TriggeredRule, ...]
    follow_up_questions: tuple[str, ...]
    critical_fired: bool
    risk_tier: RiskTier
    patient_title: str
    patient_message: str
    service_type: str = ""
    ruleset_version: str = ""
    ruleset_hash: str = ""

    @property
    def triggered_rule_ids(self) -> list[str]:
        return [rule.rule_id for rule in self.triggered_rules]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary for audit logging."""
        return {
            "outcome": self.outcome.value,
            "risk_tier": self.risk_tier.value,
            "critical_fired": self.critical_fired,
            "triggered_rules": [rule.to_dict() for rule in self.triggered_rules],
            "follow_up_questions": list(self.follow_up_questions),
            "patient_title": self.patient_title,
            "patient_message": self.patient_message,
            "service_type": self.service_type,
            "ruleset_version": self.ruleset_version,
            "ruleset_hash": self.ruleset_hash,
        }
