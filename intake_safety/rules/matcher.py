"""Condition matcher.

Decides whether a single RuleCondition holds against a snapshot of
intake answers. Matching never raises for answer data: a missing or
malformed value makes every operator false except is_absent.
"""

from collections.abc import Mapping
from datetime import date
from typing import Any

from intake_safety.rules.derived import is_number, resolve_derived_value
from intake_safety.rules.models import ConditionOperator, RuleCondition
from intake_safety.utils.time import utc_today

_COLLECTION_TYPES = (list, tuple, set, frozenset)


def is_missing(value: Any) -> bool:
    """True for absent, None, blank string or empty collection answers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (*_COLLECTION_TYPES, dict)):
        return len(value) == 0
    return False


def values_equal(actual: Any, expected: Any) -> bool:
    """Equality that never treats booleans as numbers."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected

    if isinstance(actual, _COLLECTION_TYPES) and isinstance(expected, _COLLECTION_TYPES):
        return set(actual) == set(expected)

    return actual == expected


def read_condition_value(
    condition: RuleCondition,
    answers: Mapping[str, Any],
    as_of: date,
) -> Any:
    """Get the answer value a condition compares against.

    A derived value that cannot be computed reads as None (missing).
    """
    if condition.derived_from is None:
        return answers.get(condition.field)

    try:
        return resolve_derived_value(condition.derived_from, answers, as_of)
    except (ArithmeticError, TypeError, ValueError):
        return None


def condition_holds(
    condition: RuleCondition,
    answers: Mapping[str, Any],
    as_of: date | None = None,
) -> bool:
    """Evaluate a single condition.

    Args:
        condition: Condition to test
        answers: Intake answers snapshot (not modified)
        as_of: Evaluation date for derived date values (defaults to today, UTC)

    Returns:
        True if the condition holds
    """
    if as_of is None:
        as_of = utc_today()

    actual = read_condition_value(condition, answers, as_of)
    operator = condition.operator

    if is_missing(actual):
        return operator == ConditionOperator.IS_ABSENT

    expected = condition.value

    try:
        if operator == ConditionOperator.EQUALS:
            return values_equal(actual, expected)
        elif operator == ConditionOperator.NOT_EQUALS:
            return not values_equal(actual, expected)
        elif operator == ConditionOperator.ONE_OF:
            return _matches_any(actual, expected)
        elif operator == ConditionOperator.NOT_ONE_OF:
            if not isinstance(expected, _COLLECTION_TYPES):
                return False
            return not _matches_any(actual, expected)
        elif operator == ConditionOperator.GREATER_THAN:
            return _both_numbers(actual, expected) and actual > expected
        elif operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
            return _both_numbers(actual, expected) and actual >= expected
        elif operator == ConditionOperator.LESS_THAN:
            return _both_numbers(actual, expected) and actual < expected
        elif operator == ConditionOperator.LESS_THAN_OR_EQUAL:
            return _both_numbers(actual, expected) and actual <= expected
        elif operator == ConditionOperator.IS_PRESENT:
            return True
        elif operator == ConditionOperator.IS_ABSENT:
            return False
    except (ArithmeticError, TypeError, ValueError):
        return False

    return False


def all_conditions_hold(
    conditions: tuple[RuleCondition, ...],
    answers: Mapping[str, Any],
    as_of: date | None = None,
) -> bool:
    """Evaluate conditions with AND logic.

    An empty condition list never holds, so an authoring mistake
    leaves the rule inert instead of firing on every intake.
    """
    if not conditions:
        return False
    if as_of is None:
        as_of = utc_today()
    return all(condition_holds(condition, answers, as_of) for condition in conditions)


def _both_numbers(actual: Any, expected: Any) -> bool:
    return is_number(actual) and is_number(expected)


def _matches_any(actual: Any, options: Any) -> bool:
    """Membership test; a multi-select answer matches if any entry does."""
    if not isinstance(options, _COLLECTION_TYPES):
        return False

    if isinstance(actual, _COLLECTION_TYPES):
        return any(values_equal(item, option) for item in actual for option in options)

    return any(values_equal(actual, option) for option in options)
