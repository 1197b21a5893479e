"""Intake safety check endpoints.

These endpoints are the server-side enforcement point for intake
safety screening. The client flow may run its own checks for UX,
but only the result returned here decides whether an intake proceeds.
"""

from fastapi import APIRouter, status

from intake_safety.api.deps import Registry, SafetyService
from intake_safety.core.config import settings
from intake_safety.schemas.safety import (
    EmergencyGuidanceResponse,
    RulesetInfoRead,
    SafetyCheckResponse,
    SafetyEvaluateRequest,
    SafetyFollowUpRequest,
)
from intake_safety.services.safety import SafetyCheck

router = APIRouter(prefix="/safety", tags=["safety"])


def _to_response(check: SafetyCheck) -> SafetyCheckResponse:
    guidance = settings.emergency_guidance_text if settings.emergency_guidance_enabled else None
    return SafetyCheckResponse.from_check(
        check,
        emergency_guidance=guidance,
        manual_review_message=settings.manual_review_message,
    )


@router.get("/emergency-guidance", response_model=EmergencyGuidanceResponse)
async def get_emergency_guidance() -> EmergencyGuidanceResponse:
    """Get emergency guidance text.

    This endpoint is public to ensure emergency information is always accessible.
    """
    return EmergencyGuidanceResponse(
        enabled=settings.emergency_guidance_enabled,
        text=settings.emergency_guidance_text,
    )


@router.get("/rulesets", response_model=list[RulesetInfoRead])
async def list_rulesets(registry: Registry) -> list[RulesetInfoRead]:
    """List the active safety rulesets with version and integrity hash."""
    return [
        RulesetInfoRead(
            id=rule_set.service_type,
            version=rule_set.version,
            description=rule_set.description,
            aliases=list(rule_set.aliases),
            rule_count=len(rule_set.rules),
            hash=rule_set.ruleset_hash,
        )
        for rule_set in registry.rule_sets()
    ]


@router.post(
    "/{service_type}/evaluate",
    response_model=SafetyCheckResponse,
    status_code=status.HTTP_200_OK,
)
async def evaluate_intake(
    service_type: str,
    body: SafetyEvaluateRequest,
    service: SafetyService,
) -> SafetyCheckResponse:
    """Screen a submitted intake before doctor review or payment.

    Unknown services and broken rulesets return 503: the intake must
    go to manual review, never proceed automatically.
    """
    check = service.check_intake(
        service_type,
        body.answers,
        intake_id=body.intake_id,
    )
    return _to_response(check)


@router.post(
    "/{service_type}/follow-up",
    response_model=SafetyCheckResponse,
    status_code=status.HTTP_200_OK,
)
async def submit_follow_up(
    service_type: str,
    body: SafetyFollowUpRequest,
    service: SafetyService,
) -> SafetyCheckResponse:
    """Re-screen an intake with the patient's follow-up answers.

    Only accepted while the intake is waiting for more information;
    allowed and blocked intakes are final (409).
    """
    check = service.submit_follow_up(
        service_type,
        body.original_answers,
        body.follow_up_answers,
        previous_state=body.previous_state,
        round_number=body.round_number,
        intake_id=body.intake_id,
    )
    return _to_response(check)
