"""Service type to safety ruleset registry.

The registry is built completely before it is published and is never
mutated afterwards. Reloading builds a new registry and swaps the
process-wide reference, so an evaluation in flight always sees one
consistent set of rules.
"""

import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from types import MappingProxyType

from intake_safety.core.config import settings
from intake_safety.rules.errors import ConfigurationError, RuleSetNotFoundError
from intake_safety.rules.loader import RulesetLoader
from intake_safety.rules.models import ServiceRuleSet

logger = logging.getLogger(__name__)


class RuleRegistry:
    """Read-only lookup of rule sets by service type or alias."""

    def __init__(self, rule_sets: Iterable[ServiceRuleSet]) -> None:
        by_service: dict[str, ServiceRuleSet] = {}
        lookup: dict[str, ServiceRuleSet] = {}

        for rule_set in rule_sets:
            if rule_set.service_type in by_service:
                raise ConfigurationError(
                    f"Duplicate ruleset for service '{rule_set.service_type}'"
                )
            by_service[rule_set.service_type] = rule_set

            for key in (rule_set.service_type, *rule_set.aliases):
                existing = lookup.get(key)
                if existing is not None and existing is not rule_set:
                    raise ConfigurationError(
                        f"Service key '{key}' is claimed by both "
                        f"'{existing.service_type}' and '{rule_set.service_type}'"
                    )
                lookup[key] = rule_set

        self._rule_sets = MappingProxyType(by_service)
        self._lookup = MappingProxyType(lookup)

    @classmethod
    def from_directory(cls, rulesets_dir: Path | None = None) -> "RuleRegistry":
        """Load every ruleset in a directory into a new registry."""
        loader = RulesetLoader(rulesets_dir)
        return cls(loader.load_all())

    def get(self, service_type: str) -> ServiceRuleSet:
        """Get the rule set for a service type or alias.

        Raises:
            RuleSetNotFoundError: If no rule set is configured
        """
        rule_set = self._lookup.get(service_type)
        if rule_set is None:
            raise RuleSetNotFoundError(service_type)
        return rule_set

    def __contains__(self, service_type: object) -> bool:
        return service_type in self._lookup

    def __len__(self) -> int:
        return len(self._rule_sets)

    @property
    def service_types(self) -> list[str]:
        """Canonical service types, sorted."""
        return sorted(self._rule_sets)

    def rule_sets(self) -> list[ServiceRuleSet]:
        """All rule sets ordered by service type."""
        return [self._rule_sets[key] for key in self.service_types]


_registry: RuleRegistry | None = None
_registry_lock = threading.Lock()


def get_rule_registry() -> RuleRegistry:
    """Get the process-wide registry, loading it on first use."""
    registry = _registry
    if registry is not None:
        return registry

    with _registry_lock:
        if _registry is None:
            publish_rule_registry(RuleRegistry.from_directory(settings.rulesets_dir))
        return _registry  # type: ignore[return-value]


def publish_rule_registry(registry: RuleRegistry) -> None:
    """Replace the process-wide registry with a fully built one."""
    global _registry
    _registry = registry
    logger.info(f"Published safety rule registry: {', '.join(registry.service_types)}")


def reload_rule_registry(rulesets_dir: Path | None = None) -> RuleRegistry:
    """Build a fresh registry from disk and publish it.

    If loading fails the previous registry stays in place.
    """
    registry = RuleRegistry.from_directory(rulesets_dir or settings.rulesets_dir)
    with _registry_lock:
        publish_rule_registry(registry)
    return registry


def reset_rule_registry() -> None:
    """Drop the process-wide registry (used by tests)."""
    global _registry
    with _registry_lock:
        _registry = None
