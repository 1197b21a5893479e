"""YAML safety ruleset loader with integrity hashing and validation.

Rulesets are validated once at load time so that authoring mistakes
(unknown operators, numeric thresholds against text, undeclared
follow-up questions) surface as ConfigurationError before any intake
is evaluated.
"""

import hashlib
import logging
from pathlib import Path
from typing import Any

import yaml

from intake_safety.rules.derived import is_number
from intake_safety.rules.errors import ConfigurationError, MalformedConditionError
from intake_safety.rules.models import (
    DERIVED_FIELD_COUNTS,
    NUMERIC_OPERATORS,
    PRESENCE_OPERATORS,
    SET_OPERATORS,
    ConditionOperator,
    DerivedFrom,
    DerivedValueType,
    FollowUpOption,
    FollowUpQuestion,
    RiskTier,
    RuleCondition,
    SafetyOutcome,
    SafetyRule,
    ServiceRuleSet,
)

logger = logging.getLogger(__name__)

# Packaged rulesets directory
RULESETS_DIR = Path(__file__).parent.parent / "rulesets"

QUESTION_TYPES = frozenset({"text", "textarea", "select", "boolean", "number", "date"})


def compute_ruleset_hash(*contents: str) -> str:
    """Compute SHA256 hash of ruleset content.

    Used for audit trail to ensure the ruleset hasn't been modified.
    Included fragments are hashed together with the main file.

    Args:
        contents: Raw YAML content strings, main file first

    Returns:
        SHA256 hex digest
    """
    digest = hashlib.sha256()
    for content in contents:
        digest.update(content.encode("utf-8"))
    return digest.hexdigest()


def load_ruleset(filename: str, rulesets_dir: Path | None = None) -> ServiceRuleSet:
    """Load and validate a service ruleset YAML file.

    Args:
        filename: Name of the ruleset file (e.g., "medical-certificate.yaml")
        rulesets_dir: Directory containing rulesets (defaults to the packaged rulesets)

    Returns:
        Immutable ServiceRuleSet

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or malformed
    """
    if rulesets_dir is None:
        rulesets_dir = RULESETS_DIR

    document, content = _read_document(rulesets_dir / filename)

    includes = document.get("include", []) or []
    if not isinstance(includes, list):
        raise ConfigurationError(f"{filename}: 'include' must be a list of paths")

    fragments: list[dict[str, Any]] = []
    contents = [content]
    for include in includes:
        fragment_path = _resolve_include(rulesets_dir, include)
        fragment, fragment_content = _read_document(fragment_path)
        fragments.append(fragment)
        contents.append(fragment_content)

    rule_set = parse_ruleset(
        document,
        fragments=fragments,
        ruleset_hash=compute_ruleset_hash(*contents),
        source=filename,
    )

    logger.info(
        f"Loaded safety ruleset {rule_set.service_type} v{rule_set.version} "
        f"({len(rule_set.rules)} rules, hash={rule_set.ruleset_hash[:12]})"
    )
    return rule_set


def parse_ruleset(
    document: dict[str, Any],
    fragments: list[dict[str, Any]] | None = None,
    ruleset_hash: str = "",
    source: str = "",
) -> ServiceRuleSet:
    """Build a validated ServiceRuleSet from parsed YAML.

    Rules from included fragments come first, in include order,
    followed by the document's own rules. Definition order is kept
    because it breaks ties between rules of the same risk tier.

    Args:
        document: Parsed service ruleset
        fragments: Parsed shared fragments named by the document's include list
        ruleset_hash: Hash of the source content
        source: Source file name for error messages

    Returns:
        Immutable ServiceRuleSet

    Raises:
        ConfigurationError: If any part of the ruleset is malformed
    """
    if not isinstance(document, dict):
        raise ConfigurationError(f"{source or 'ruleset'}: top level must be a mapping")

    service_type = document.get("id")
    if not isinstance(service_type, str) or not service_type:
        raise ConfigurationError(f"{source or 'ruleset'}: missing 'id'")

    version = document.get("version")
    if version is None:
        raise ConfigurationError(f"{service_type}: missing 'version'")

    aliases = document.get("aliases", []) or []
    if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
        raise ConfigurationError(f"{service_type}: 'aliases' must be a list of strings")

    sections = [*(fragments or []), document]

    questions: dict[str, FollowUpQuestion] = {}
    for section in sections:
        for raw_question in section.get("follow_up_questions", []) or []:
            question = _parse_question(service_type, raw_question)
            if question.id in questions:
                raise ConfigurationError(
                    f"{service_type}: duplicate follow-up question '{question.id}'"
                )
            questions[question.id] = question

    rules: list[SafetyRule] = []
    seen_ids: set[str] = set()
    for section in sections:
        raw_rules = section.get("rules", []) or []
        if not isinstance(raw_rules, list):
            raise ConfigurationError(f"{service_type}: 'rules' must be a list")

        for raw_rule in raw_rules:
            rule = _parse_rule(raw_rule, questions)
            if rule.id in seen_ids:
                raise ConfigurationError(f"{service_type}: duplicate rule id '{rule.id}'")
            seen_ids.add(rule.id)
            rules.append(rule)

    if not rules:
        raise ConfigurationError(f"{service_type}: ruleset defines no rules")

    return ServiceRuleSet(
        service_type=service_type,
        version=str(version),
        rules=tuple(rules),
        description=document.get("description", "") or "",
        aliases=tuple(aliases),
        follow_up_questions=tuple(questions.values()),
        ruleset_hash=ruleset_hash,
        source=source,
    )


def _read_document(filepath: Path) -> tuple[dict[str, Any], str]:
    if not filepath.exists():
        raise ConfigurationError(f"Ruleset not found: {filepath}")

    content = filepath.read_text(encoding="utf-8")
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {filepath.name}: {exc}") from exc

    if not isinstance(document, dict):
        raise ConfigurationError(f"{filepath.name}: top level must be a mapping")

    return document, content


def _resolve_include(rulesets_dir: Path, include: Any) -> Path:
    if not isinstance(include, str) or not include:
        raise ConfigurationError(f"Invalid include entry: {include!r}")

    base = rulesets_dir.resolve()
    path = (base / include).resolve()
    if base not in path.parents:
        raise ConfigurationError(f"Include '{include}' is outside the rulesets directory")
    return path


def _parse_question(service_type: str, raw: Any) -> FollowUpQuestion:
    if not isinstance(raw, dict) or not raw.get("id") or not raw.get("label"):
        raise ConfigurationError(
            f"{service_type}: follow-up questions need an 'id' and a 'label'"
        )

    question_type = raw.get("type", "text")
    if question_type not in QUESTION_TYPES:
        raise ConfigurationError(
            f"{service_type}: question '{raw['id']}' has unknown type '{question_type}'"
        )

    options = []
    for option in raw.get("options", []) or []:
        if not isinstance(option, dict) or "value" not in option:
            raise ConfigurationError(
                f"{service_type}: question '{raw['id']}' has an option without a value"
            )
        options.append(
            FollowUpOption(
                value=str(option["value"]),
                label=str(option.get("label", option["value"])),
            )
        )

    if question_type == "select" and not options:
        raise ConfigurationError(
            f"{service_type}: select question '{raw['id']}' has no options"
        )

    return FollowUpQuestion(
        id=str(raw["id"]),
        label=str(raw["label"]),
        type=question_type,
        description=raw.get("description", "") or "",
        options=tuple(options),
        required=bool(raw.get("required", True)),
    )


def _parse_rule(raw: Any, questions: dict[str, FollowUpQuestion]) -> SafetyRule:
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
        raise ConfigurationError(f"Rule definition without a string 'id': {raw!r}")

    rule_id = raw["id"]
    when = raw.get("when", {}) or {}
    then = raw.get("then", {}) or {}

    if not isinstance(when, dict) or not isinstance(then, dict):
        raise ConfigurationError(f"Rule '{rule_id}': 'when' and 'then' must be mappings")

    if "any" in when:
        raise MalformedConditionError(
            rule_id, "only 'all' condition blocks are supported; split 'any' into separate rules"
        )

    raw_conditions = when.get("all", []) or []
    if not isinstance(raw_conditions, list):
        raise MalformedConditionError(rule_id, "'when.all' must be a list")

    conditions = tuple(_parse_condition(rule_id, c) for c in raw_conditions)
    if not conditions:
        logger.warning(f"Safety rule '{rule_id}' has no conditions and will never fire")

    try:
        outcome = SafetyOutcome(then.get("outcome"))
    except ValueError:
        raise ConfigurationError(
            f"Rule '{rule_id}': unknown outcome {then.get('outcome')!r}"
        ) from None

    try:
        risk_tier = RiskTier(then.get("risk_tier"))
    except ValueError:
        raise ConfigurationError(
            f"Rule '{rule_id}': unknown risk tier {then.get('risk_tier')!r}"
        ) from None

    follow_up = then.get("follow_up", []) or []
    if not isinstance(follow_up, list) or not all(isinstance(q, str) for q in follow_up):
        raise ConfigurationError(f"Rule '{rule_id}': 'follow_up' must be a list of ids")

    undeclared = [q for q in follow_up if q not in questions]
    if undeclared:
        raise ConfigurationError(
            f"Rule '{rule_id}': undeclared follow-up questions {undeclared}"
        )

    if outcome == SafetyOutcome.NEEDS_MORE_INFO and not follow_up:
        raise ConfigurationError(
            f"Rule '{rule_id}': needs_more_info rules must list follow-up questions"
        )

    return SafetyRule(
        id=rule_id,
        name=raw.get("name", "") or "",
        description=raw.get("description", "") or "",
        conditions=conditions,
        outcome=outcome,
        risk_tier=risk_tier,
        follow_up=tuple(follow_up),
        patient_message=then.get("patient_message", "") or "",
        doctor_note=then.get("doctor_note", "") or "",
    )


def _parse_condition(rule_id: str, raw: Any) -> RuleCondition:
    """Validate one condition's operator/value combination."""
    if not isinstance(raw, dict):
        raise MalformedConditionError(rule_id, f"condition must be a mapping, got {raw!r}")

    field_name = raw.get("field")
    if not isinstance(field_name, str) or not field_name:
        raise MalformedConditionError(rule_id, "condition is missing 'field'")

    try:
        operator = ConditionOperator(raw.get("op"))
    except ValueError:
        raise MalformedConditionError(
            rule_id, f"unknown operator {raw.get('op')!r} on '{field_name}'"
        ) from None

    value = raw.get("value")

    if operator in NUMERIC_OPERATORS:
        if not is_number(value):
            raise MalformedConditionError(
                rule_id, f"'{operator.value}' on '{field_name}' needs a numeric value, got {value!r}"
            )
    elif operator in SET_OPERATORS:
        if not isinstance(value, list) or not value:
            raise MalformedConditionError(
                rule_id, f"'{operator.value}' on '{field_name}' needs a non-empty list"
            )
        if any(isinstance(item, (list, dict)) for item in value):
            raise MalformedConditionError(
                rule_id, f"'{operator.value}' on '{field_name}' needs a list of scalar values"
            )
        value = tuple(value)
    elif operator in PRESENCE_OPERATORS:
        value = None
    else:
        if value is None or isinstance(value, (list, dict)):
            raise MalformedConditionError(
                rule_id, f"'{operator.value}' on '{field_name}' needs a scalar value"
            )

    derived_from = None
    if raw.get("derived_from") is not None:
        derived_from = _parse_derived_from(rule_id, field_name, raw["derived_from"])

    return RuleCondition(
        field=field_name,
        operator=operator,
        value=value,
        derived_from=derived_from,
    )


def _parse_derived_from(rule_id: str, field_name: str, raw: Any) -> DerivedFrom:
    if not isinstance(raw, dict):
        raise MalformedConditionError(rule_id, f"'derived_from' on '{field_name}' must be a mapping")

    try:
        derived_type = DerivedValueType(raw.get("type"))
    except ValueError:
        raise MalformedConditionError(
            rule_id, f"unknown derived value type {raw.get('type')!r} on '{field_name}'"
        ) from None

    fields = raw.get("fields", [])
    expected = DERIVED_FIELD_COUNTS[derived_type]
    if (
        not isinstance(fields, list)
        or len(fields) != expected
        or not all(isinstance(f, str) and f for f in fields)
    ):
        raise MalformedConditionError(
            rule_id,
            f"derived value '{derived_type.value}' on '{field_name}' needs {expected} field name(s)",
        )

    return DerivedFrom(type=derived_type, fields=tuple(fields))


class RulesetLoader:
    """Stateful ruleset loader with caching."""

    def __init__(self, rulesets_dir: Path | None = None) -> None:
        """Initialize loader.

        Args:
            rulesets_dir: Directory containing rulesets
        """
        self.rulesets_dir = rulesets_dir or RULESETS_DIR
        self._cache: dict[str, ServiceRuleSet] = {}

    def load(self, filename: str, use_cache: bool = True) -> ServiceRuleSet:
        """Load a ruleset with optional caching.

        Args:
            filename: Ruleset filename
            use_cache: Whether to use cached version if available

        Returns:
            ServiceRuleSet
        """
        if use_cache and filename in self._cache:
            return self._cache[filename]

        rule_set = load_ruleset(filename, self.rulesets_dir)
        self._cache[filename] = rule_set

        return rule_set

    def load_all(self) -> list[ServiceRuleSet]:
        """Load every service ruleset in the directory."""
        return [self.load(filename) for filename in self.list_rulesets()]

    def clear_cache(self) -> None:
        """Clear the ruleset cache."""
        self._cache.clear()

    def list_rulesets(self) -> list[str]:
        """List available service ruleset files.

        Shared fragments live in subdirectories and are not listed.

        Returns:
            List of ruleset filenames
        """
        return sorted(f.name for f in self.rulesets_dir.glob("*.yaml"))

    def get_ruleset_info(self, filename: str) -> dict[str, Any]:
        """Get metadata about a ruleset.

        Args:
            filename: Ruleset filename

        Returns:
            Dict with filename, id, version, description, aliases, rule count, hash
        """
        rule_set = self.load(filename)

        return {
            "filename": filename,
            "id": rule_set.service_type,
            "version": rule_set.version,
            "description": rule_set.description,
            "aliases": list(rule_set.aliases),
            "rule_count": len(rule_set.rules),
            "hash": rule_set.ruleset_hash,
        }
