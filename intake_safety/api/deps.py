"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends

from intake_safety.rules.engine import SafetyEngine
from intake_safety.rules.registry import RuleRegistry, get_rule_registry
from intake_safety.services.safety import SafetyCheckService


def get_registry() -> RuleRegistry:
    """Get the published safety rule registry.

    Each request reads the registry reference once, so a reload
    published mid-request does not affect it.
    """
    return get_rule_registry()


def get_safety_service(
    registry: Annotated[RuleRegistry, Depends(get_registry)],
) -> SafetyCheckService:
    """Build a safety check service bound to the current registry."""
    return SafetyCheckService(SafetyEngine(registry))


# Type aliases for cleaner dependency injection
Registry = Annotated[RuleRegistry, Depends(get_registry)]
SafetyService = Annotated[SafetyCheckService, Depends(get_safety_service)]
