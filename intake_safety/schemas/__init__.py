"""Pydantic schemas for request/response validation."""

from intake_safety.schemas.audit_event import (
    EvaluationPass,
    SafetyAuditRecord,
    TriggeredRuleRecord,
)

__all__ = [
    "EvaluationPass",
    "SafetyAuditRecord",
    "TriggeredRuleRecord",
]
