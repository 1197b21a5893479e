"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from intake_safety.api.v1 import health, safety

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Intake safety screening
api_router.include_router(
    safety.router,
    tags=["safety"],
)
