"""Intake safety check service.

Server-side enforcement point for the intake flow. Orchestrates:
1. Ruleset lookup for the intake's service type
2. Safety rules evaluation (initial pass or follow-up re-evaluation)
3. Triage state transition
4. Audit record creation

The engine holds no state between calls. The caller owns the intake's
triage state and passes it back in on every follow-up submission.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from intake_safety.core.config import settings
from intake_safety.rules.engine import (
    SafetyEngine,
    evaluate_safety,
    evaluate_with_follow_up,
    merge_answers,
)
from intake_safety.rules.errors import ConfigurationError
from intake_safety.rules.models import (
    FollowUpQuestion,
    RiskTier,
    SafetyEvaluationResult,
    SafetyOutcome,
    ServiceRuleSet,
)
from intake_safety.schemas.audit_event import EvaluationPass, SafetyAuditRecord
from intake_safety.services.audit import build_audit_record, record_safety_evaluation

logger = logging.getLogger(__name__)


class IntakeSafetyState(str, Enum):
    """Per-intake safety triage state (owned by the caller)."""

    NOT_EVALUATED = "not_evaluated"
    EVALUATED_ALLOW = "evaluated_allow"  # Terminal: proceed
    EVALUATED_NEEDS_INFO = "evaluated_needs_info"  # Waiting for follow-up answers
    EVALUATED_BLOCK = "evaluated_block"  # Terminal: emergency guidance


TERMINAL_STATES = frozenset({
    IntakeSafetyState.EVALUATED_ALLOW,
    IntakeSafetyState.EVALUATED_BLOCK,
})


class IntakeStateError(Exception):
    """Follow-up submitted for an intake that cannot accept one."""

    def __init__(self, state: IntakeSafetyState, message: str) -> None:
        self.state = state
        super().__init__(message)


def state_for_result(result: SafetyEvaluationResult) -> IntakeSafetyState:
    """Map an evaluation result to the intake's next state.

    A critical-tier rule is a hard stop for the intake even when its
    authored outcome is less severe than block_emergency.
    """
    if result.outcome == SafetyOutcome.BLOCK_EMERGENCY or result.critical_fired:
        return IntakeSafetyState.EVALUATED_BLOCK
    if result.outcome == SafetyOutcome.NEEDS_MORE_INFO:
        return IntakeSafetyState.EVALUATED_NEEDS_INFO
    return IntakeSafetyState.EVALUATED_ALLOW


@dataclass(frozen=True)
class SafetyCheck:
    """Outcome of one intake safety check."""

    state: IntakeSafetyState
    result: SafetyEvaluationResult
    follow_up_questions: tuple[FollowUpQuestion, ...]
    requires_manual_review: bool
    audit_record: SafetyAuditRecord
    round_number: int = 0

    @property
    def outcome(self) -> SafetyOutcome:
        return self.result.outcome

    @property
    def risk_tier(self) -> RiskTier:
        return self.result.risk_tier

    @property
    def is_allowed(self) -> bool:
        """True only when the intake may proceed automatically."""
        return self.state == IntakeSafetyState.EVALUATED_ALLOW and not self.requires_manual_review

    @property
    def is_blocked(self) -> bool:
        return self.state == IntakeSafetyState.EVALUATED_BLOCK

    @property
    def triggered_rule_ids(self) -> list[str]:
        return self.result.triggered_rule_ids


class SafetyCheckService:
    """Service for screening intakes before doctor review or payment.

    Configuration errors propagate to the caller. There is no
    fallback to allow: the caller must route the intake to manual
    review instead.
    """

    def __init__(
        self,
        engine: SafetyEngine | None = None,
        max_follow_up_rounds: int | None = None,
    ) -> None:
        """Initialize safety check service.

        Args:
            engine: Safety engine (defaults to one on the published registry)
            max_follow_up_rounds: Rounds before manual review (defaults to settings)
        """
        self.engine = engine or SafetyEngine()
        self.max_follow_up_rounds = (
            settings.max_follow_up_rounds
            if max_follow_up_rounds is None
            else max_follow_up_rounds
        )

    def check_intake(
        self,
        service_type: str,
        answers: Mapping[str, Any],
        intake_id: str | None = None,
        as_of: date | None = None,
    ) -> SafetyCheck:
        """Evaluate an initial intake submission.

        Args:
            service_type: Service slug or alias
            answers: Submitted intake answers
            intake_id: Caller's intake identifier for the audit trail
            as_of: Evaluation date for derived values

        Returns:
            SafetyCheck with state, result and follow-up questions

        Raises:
            ConfigurationError: If no valid ruleset exists for the service
        """
        rule_set = self._rule_set(service_type, intake_id)
        result = evaluate_safety(answers, rule_set, as_of)

        return self._complete(
            rule_set=rule_set,
            result=result,
            answers=answers,
            evaluation_pass=EvaluationPass.INITIAL,
            intake_id=intake_id,
            round_number=0,
        )

    def submit_follow_up(
        self,
        service_type: str,
        original_answers: Mapping[str, Any],
        follow_up_answers: Mapping[str, Any],
        previous_state: IntakeSafetyState,
        round_number: int = 1,
        intake_id: str | None = None,
        as_of: date | None = None,
    ) -> SafetyCheck:
        """Re-evaluate an intake after follow-up answers were collected.

        The full ruleset is always evaluated again on the merged answers,
        however benign the new answers look.

        Args:
            service_type: Service slug or alias
            original_answers: Answers from the previous pass
            follow_up_answers: Newly supplied answers (win on key collision)
            previous_state: Intake state after the previous pass
            round_number: 1-based follow-up round
            intake_id: Caller's intake identifier for the audit trail
            as_of: Evaluation date for derived values

        Returns:
            SafetyCheck for the merged answers

        Raises:
            IntakeStateError: If the intake is not waiting for follow-up answers
            ConfigurationError: If no valid ruleset exists for the service
        """
        if previous_state in TERMINAL_STATES:
            raise IntakeStateError(
                previous_state,
                f"Intake safety check is final ({previous_state.value}); "
                "no further automated evaluation",
            )
        if previous_state == IntakeSafetyState.NOT_EVALUATED:
            raise IntakeStateError(
                previous_state,
                "Intake must be evaluated before follow-up answers are accepted",
            )
        if round_number < 1:
            raise ValueError("round_number must be at least 1")

        rule_set = self._rule_set(service_type, intake_id)
        result = evaluate_with_follow_up(
            original_answers, follow_up_answers, rule_set, as_of
        )

        return self._complete(
            rule_set=rule_set,
            result=result,
            answers=merge_answers(original_answers, follow_up_answers),
            evaluation_pass=EvaluationPass.FOLLOW_UP,
            intake_id=intake_id,
            round_number=round_number,
        )

    def _rule_set(self, service_type: str, intake_id: str | None) -> ServiceRuleSet:
        try:
            return self.engine.rule_set_for(service_type)
        except ConfigurationError as exc:
            logger.error(
                f"Safety check unavailable for service '{service_type}': {exc}",
                extra={"intake_id": intake_id, "service_type": service_type},
            )
            raise

    def _complete(
        self,
        rule_set: ServiceRuleSet,
        result: SafetyEvaluationResult,
        answers: Mapping[str, Any],
        evaluation_pass: EvaluationPass,
        intake_id: str | None,
        round_number: int,
    ) -> SafetyCheck:
        state = state_for_result(result)

        requires_manual_review = (
            state == IntakeSafetyState.EVALUATED_NEEDS_INFO
            and round_number >= self.max_follow_up_rounds
            and evaluation_pass == EvaluationPass.FOLLOW_UP
        )

        questions: tuple[FollowUpQuestion, ...] = ()
        if state == IntakeSafetyState.EVALUATED_NEEDS_INFO and not requires_manual_review:
            questions = tuple(
                question
                for question in (rule_set.get_question(q) for q in result.follow_up_questions)
                if question is not None
            )

        record = record_safety_evaluation(
            build_audit_record(
                result,
                answers,
                evaluation_pass=evaluation_pass,
                intake_id=intake_id,
                round_number=round_number,
                requires_manual_review=requires_manual_review,
            )
        )

        logger.info(
            f"Safety {evaluation_pass.value} evaluation for {result.service_type}: "
            f"outcome={result.outcome.value} state={state.value} "
            f"rules={result.triggered_rule_ids}",
            extra={"intake_id": intake_id, "service_type": result.service_type},
        )

        return SafetyCheck(
            state=state,
            result=result,
            follow_up_questions=questions,
            requires_manual_review=requires_manual_review,
            audit_record=record,
            round_number=round_number,
        )
