"""Business logic services."""

from intake_safety.services.audit import build_audit_record, record_safety_evaluation
from intake_safety.services.safety import (
    IntakeSafetyState,
    IntakeStateError,
    SafetyCheck,
    SafetyCheckService,
)

__all__ = [
    "build_audit_record",
    "record_safety_evaluation",
    "IntakeSafetyState",
    "IntakeStateError",
    "SafetyCheck",
    "SafetyCheckService",
]
