"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from intake_safety.api.v1.router import api_router
from intake_safety.core.config import settings
from intake_safety.core.logging import setup_logging
from intake_safety.rules.errors import ConfigurationError
from intake_safety.rules.registry import get_rule_registry
from intake_safety.services.safety import IntakeStateError

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting Intake Safety API (env={settings.env})")

    # Rulesets are loaded once; a broken ruleset stops startup
    registry = get_rule_registry()
    logger.info(f"Safety rulesets ready: {', '.join(registry.service_types)}")

    yield

    # Shutdown
    logger.info("Shutting down Intake Safety API")


# Create FastAPI application
app = FastAPI(
    title="Intake Safety API",
    description="Telehealth intake safety triage (medical certificates, prescriptions, consults)",
    version="0.1.0",
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)

# CORS middleware (configure appropriately for production)
if settings.is_dev:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """Fail closed when a ruleset is missing or malformed."""
    logger.error(f"Safety configuration error on {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": settings.manual_review_message,
            "requires_manual_review": True,
        },
    )


@app.exception_handler(IntakeStateError)
async def intake_state_error_handler(request: Request, exc: IntakeStateError) -> JSONResponse:
    """Reject follow-up submissions for intakes that are not waiting for one."""
    logger.warning(f"Rejected safety follow-up: {exc}")

    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "state": exc.state.value},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    if settings.is_prod:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint with service info."""
    return {
        "service": "Intake Safety API",
        "version": "0.1.0",
        "docs": "/docs" if settings.is_dev else "Disabled in production",
    }
