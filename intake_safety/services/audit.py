"""Safety evaluation audit records.

Durable storage of audit records belongs to the intake flow's
compliance log; this module builds the immutable record and emits it
through the audit logger.
"""

import copy
from collections.abc import Mapping
from typing import Any

from intake_safety.core.logging import audit_logger
from intake_safety.rules.models import SafetyEvaluationResult
from intake_safety.schemas.audit_event import (
    EvaluationPass,
    SafetyAuditRecord,
    TriggeredRuleRecord,
)
from intake_safety.utils.time import format_datetime, utc_now


def build_audit_record(
    result: SafetyEvaluationResult,
    answers: Mapping[str, Any],
    evaluation_pass: EvaluationPass = EvaluationPass.INITIAL,
    intake_id: str | None = None,
    round_number: int = 0,
    requires_manual_review: bool = False,
) -> SafetyAuditRecord:
    """Build the audit record for an evaluation.

    Args:
        result: Evaluation result
        answers: The exact answers snapshot that was evaluated
        evaluation_pass: Initial submission or follow-up re-evaluation
        intake_id: Caller's intake identifier
        round_number: Follow-up round (0 for the initial pass)
        requires_manual_review: Whether the intake was routed to a doctor

    Returns:
        Frozen SafetyAuditRecord
    """
    return SafetyAuditRecord(
        intake_id=intake_id,
        service_type=result.service_type,
        evaluation_pass=evaluation_pass,
        round_number=round_number,
        outcome=result.outcome.value,
        risk_tier=result.risk_tier.value,
        critical_fired=result.critical_fired,
        triggered_rule_ids=result.triggered_rule_ids,
        triggered_rules=[
            TriggeredRuleRecord(**rule.to_dict()) for rule in result.triggered_rules
        ],
        follow_up_questions=list(result.follow_up_questions),
        answers_snapshot=copy.deepcopy(dict(answers)),
        ruleset_version=result.ruleset_version,
        ruleset_hash=result.ruleset_hash,
        requires_manual_review=requires_manual_review,
        evaluated_at=utc_now(),
    )


def record_safety_evaluation(record: SafetyAuditRecord) -> SafetyAuditRecord:
    """Emit an audit record to the audit log.

    Answers are not written to the log line; they stay on the record
    returned to the caller for durable storage.
    """
    audit_logger.log(
        action=f"safety_evaluation_{record.evaluation_pass.value}",
        entity_type="intake",
        entity_id=record.intake_id or "unassigned",
        metadata={
            "service_type": record.service_type,
            "outcome": record.outcome,
            "risk_tier": record.risk_tier,
            "critical_fired": record.critical_fired,
            "triggered_rule_ids": record.triggered_rule_ids,
            "follow_up_questions": record.follow_up_questions,
            "round_number": record.round_number,
            "requires_manual_review": record.requires_manual_review,
            "ruleset_version": record.ruleset_version,
            "ruleset_hash": record.ruleset_hash,
            "evaluated_at": format_datetime(record.evaluated_at),
        },
    )
    return record
