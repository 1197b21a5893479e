"""Safety audit record schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EvaluationPass(str, Enum):
    """Which submission produced an evaluation."""

    INITIAL = "initial"
    FOLLOW_UP = "follow_up"


class TriggeredRuleRecord(BaseModel):
    """Audit detail of one triggered rule."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    name: str = ""
    description: str = ""
    outcome: str
    risk_tier: str
    follow_up: list[str] = Field(default_factory=list)
    doctor_note: str = ""
    field_values: dict[str, Any] = Field(default_factory=dict)


class SafetyAuditRecord(BaseModel):
    """Immutable record of one safety evaluation (internal use).

    Carries everything needed for regulatory traceability without
    re-running the evaluation: what fired, against which answers,
    under which ruleset version.
    """

    model_config = ConfigDict(frozen=True)

    intake_id: str | None = None
    service_type: str
    evaluation_pass: EvaluationPass
    round_number: int = Field(default=0, ge=0)
    outcome: str
    risk_tier: str
    critical_fired: bool
    triggered_rule_ids: list[str]
    triggered_rules: list[TriggeredRuleRecord]
    follow_up_questions: list[str]
    answers_snapshot: dict[str, Any]
    ruleset_version: str
    ruleset_hash: str
    requires_manual_review: bool = False
    evaluated_at: datetime
