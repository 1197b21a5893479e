"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from intake_safety.api.deps import Registry

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


class ReadinessResponse(HealthResponse):
    """Readiness check response."""

    services: list[str]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Returns service health status",
)
async def health_check() -> HealthResponse:
    """Check if the service is healthy.

    Returns:
        Health status response
    """
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns service readiness status for k8s probes",
)
async def readiness_check(registry: Registry) -> ReadinessResponse:
    """Check if the service is ready to accept requests.

    Ready means the safety rulesets are loaded; a broken ruleset
    surfaces as 503 through the configuration error handler.

    Returns:
        Readiness status response
    """
    return ReadinessResponse(status="ok", services=registry.service_types)
