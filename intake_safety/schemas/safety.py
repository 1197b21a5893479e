"""Pydantic schemas for intake safety checks.

Responses are patient-facing: they carry the outcome, the message
to show and the follow-up questions, but never rule ids or doctor
notes. Those go to the audit log only.
"""

from typing import Any

from pydantic import BaseModel, Field

from intake_safety.rules.engine import DEFAULT_MESSAGES, OUTCOME_TITLES
from intake_safety.rules.models import FollowUpQuestion, SafetyOutcome
from intake_safety.services.safety import IntakeSafetyState, SafetyCheck


class SafetyEvaluateRequest(BaseModel):
    """Schema for an initial intake safety check."""

    answers: dict[str, Any] = Field(..., description="Intake answers as JSON")
    intake_id: str | None = Field(None, max_length=100)


class SafetyFollowUpRequest(BaseModel):
    """Schema for submitting follow-up answers."""

    original_answers: dict[str, Any] = Field(..., description="Answers from the previous pass")
    follow_up_answers: dict[str, Any] = Field(..., description="Answers to follow-up questions")
    previous_state: IntakeSafetyState
    round_number: int = Field(default=1, ge=1)
    intake_id: str | None = Field(None, max_length=100)


class FollowUpOptionRead(BaseModel):
    value: str
    label: str


class FollowUpQuestionRead(BaseModel):
    """A follow-up question to render in the intake flow."""

    id: str
    label: str
    type: str
    description: str = ""
    options: list[FollowUpOptionRead] = Field(default_factory=list)
    required: bool = True

    @classmethod
    def from_question(cls, question: FollowUpQuestion) -> "FollowUpQuestionRead":
        return cls(
            id=question.id,
            label=question.label,
            type=question.type,
            description=question.description,
            options=[
                FollowUpOptionRead(value=option.value, label=option.label)
                for option in question.options
            ],
            required=question.required,
        )


class SafetyCheckResponse(BaseModel):
    """Patient-safe result of a safety check."""

    state: IntakeSafetyState
    outcome: SafetyOutcome
    is_allowed: bool
    requires_manual_review: bool
    title: str
    message: str
    follow_up_questions: list[FollowUpQuestionRead] = Field(default_factory=list)
    emergency_guidance: str | None = None
    round_number: int = 0

    @classmethod
    def from_check(
        cls,
        check: SafetyCheck,
        emergency_guidance: str | None = None,
        manual_review_message: str | None = None,
    ) -> "SafetyCheckResponse":
        """Build the response, exposing only what the patient should see."""
        title = check.result.patient_title
        message = check.result.patient_message
        if check.is_blocked:
            title = OUTCOME_TITLES[SafetyOutcome.BLOCK_EMERGENCY]
            if check.outcome != SafetyOutcome.BLOCK_EMERGENCY:
                # A critical rule with a softer outcome still stops the intake
                message = DEFAULT_MESSAGES[SafetyOutcome.BLOCK_EMERGENCY]
        if check.requires_manual_review and manual_review_message:
            message = manual_review_message

        return cls(
            state=check.state,
            outcome=check.outcome,
            is_allowed=check.is_allowed,
            requires_manual_review=check.requires_manual_review,
            title=title,
            message=message,
            follow_up_questions=[
                FollowUpQuestionRead.from_question(q) for q in check.follow_up_questions
            ],
            emergency_guidance=emergency_guidance if check.is_blocked else None,
            round_number=check.round_number,
        )


class RulesetInfoRead(BaseModel):
    """Ruleset metadata for operators and audit."""

    id: str
    version: str
    description: str = ""
    aliases: list[str] = Field(default_factory=list)
    rule_count: int
    hash: str


class EmergencyGuidanceResponse(BaseModel):
    """Emergency guidance configuration."""

    enabled: bool
    text: str
