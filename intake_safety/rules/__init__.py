"""Deterministic intake safety rules engine.

This module provides a YAML-based safety rules engine that triages
intake answers before any doctor or payment step.
All triage decisions are deterministic and explainable - no AI/ML is used.
"""

from intake_safety.rules.engine import (
    SafetyEngine,
    evaluate_for_service,
    evaluate_safety,
    evaluate_with_follow_up,
    merge_answers,
)
from intake_safety.rules.errors import (
    ConfigurationError,
    MalformedConditionError,
    RuleSetNotFoundError,
)
from intake_safety.rules.loader import (
    RulesetLoader,
    compute_ruleset_hash,
    load_ruleset,
    parse_ruleset,
)
from intake_safety.rules.matcher import condition_holds
from intake_safety.rules.models import (
    ConditionOperator,
    RiskTier,
    RuleCondition,
    SafetyEvaluationResult,
    SafetyOutcome,
    SafetyRule,
    ServiceRuleSet,
    TriggeredRule,
)
from intake_safety.rules.registry import (
    RuleRegistry,
    get_rule_registry,
    reload_rule_registry,
)

__all__ = [
    "ConditionOperator",
    "RiskTier",
    "RuleCondition",
    "SafetyEvaluationResult",
    "SafetyOutcome",
    "SafetyRule",
    "ServiceRuleSet",
    "TriggeredRule",
    "ConfigurationError",
    "MalformedConditionError",
    "RuleSetNotFoundError",
    "RulesetLoader",
    "load_ruleset",
    "parse_ruleset",
    "compute_ruleset_hash",
    "condition_holds",
    "RuleRegistry",
    "get_rule_registry",
    "reload_rule_registry",
    "SafetyEngine",
    "evaluate_safety",
    "evaluate_with_follow_up",
    "evaluate_for_service",
    "merge_answers",
]
