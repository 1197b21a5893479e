"""Derived values computed from intake answers.

Some rules compare against values the patient never enters directly,
such as BMI from weight and height, or age from date of birth.
Every calculator returns None when its inputs are missing or
unparseable, so the owning condition evaluates as "missing" instead
of raising.
"""

import math
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from intake_safety.rules.models import DERIVED_FIELD_COUNTS, DerivedFrom, DerivedValueType
from intake_safety.utils.time import parse_date

TODAY = "today"

# Sentinel option on multi-select questions ("None of these")
NONE_OPTION = "none"


def is_number(value: Any) -> bool:
    """True for int/float answers; booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compute_bmi(weight_kg: Any, height_cm: Any) -> float | None:
    """Body mass index from weight (kg) and height (cm).

    Values too large or too small for float arithmetic give None.
    """
    if not (is_number(weight_kg) and is_number(height_cm)):
        return None
    if weight_kg <= 0 or height_cm <= 0:
        return None

    try:
        height_m = float(height_cm) / 100
        bmi = float(weight_kg) / (height_m * height_m)
    except (OverflowError, ZeroDivisionError):
        return None

    return bmi if math.isfinite(bmi) else None


def compute_age(date_of_birth: Any, as_of: date) -> int | None:
    """Age in whole years on the given date."""
    birth = _to_date(date_of_birth)
    if birth is None or birth > as_of:
        return None

    age = as_of.year - birth.year
    if (as_of.month, as_of.day) < (birth.month, birth.day):
        age -= 1
    return age


def compute_duration_days(start: Any, end: Any, as_of: date) -> int | None:
    """Absolute number of days between two dates.

    The end may be the literal "today", meaning the evaluation date.
    """
    start_date = _to_date(start)
    end_date = as_of if end == TODAY else _to_date(end)
    if start_date is None or end_date is None:
        return None

    return abs((end_date - start_date).days)


def count_selected(selected: Any) -> int | None:
    """Number of selected options, ignoring the "none" option."""
    if not isinstance(selected, (list, tuple, set, frozenset)):
        return None
    return len([item for item in selected if item != NONE_OPTION])


def resolve_derived_value(
    derived_from: DerivedFrom,
    answers: Mapping[str, Any],
    as_of: date,
) -> Any:
    """Compute the value described by a DerivedFrom block.

    Args:
        derived_from: Derived value type and source fields
        answers: Intake answers snapshot
        as_of: Evaluation date used for "today" and ages

    Returns:
        The derived value, or None if it cannot be computed
    """
    if len(derived_from.fields) < DERIVED_FIELD_COUNTS[derived_from.type]:
        return None

    values = [
        TODAY if name == TODAY else answers.get(name)
        for name in derived_from.fields
    ]

    if derived_from.type == DerivedValueType.BMI:
        return compute_bmi(values[0], values[1])
    if derived_from.type == DerivedValueType.AGE:
        return compute_age(values[0], as_of)
    if derived_from.type == DerivedValueType.DURATION_DAYS:
        return compute_duration_days(values[0], values[1], as_of)
    if derived_from.type == DerivedValueType.COUNT:
        return count_selected(values[0])

    return None


def _to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return parse_date(value)
    except ValueError:
        return None
