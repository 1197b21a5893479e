"""Safety rule configuration errors.

Configuration errors are fatal to an evaluation. Callers must fail
closed (manual review or refusal), never fall back to allow.
Missing answer fields are not errors.
"""


class ConfigurationError(Exception):
    """Rule set is missing or malformed."""


class RuleSetNotFoundError(ConfigurationError):
    """No rule set is configured for the requested service type."""

    def __init__(self, service_type: str) -> None:
        self.service_type = service_type
        super().__init__(f"No safety rule set configured for service '{service_type}'")


class MalformedConditionError(ConfigurationError):
    """A condition cannot be evaluated as authored."""

    def __init__(self, rule_id: str, message: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Rule '{rule_id}': {message}")
