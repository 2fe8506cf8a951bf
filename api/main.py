"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import text

from api.models.booking_schemas import ErrorResponse
from api.routes import bookings, payments, services
from database.connection import get_async_session
from shared.circuit_breaker import get_breaker_status
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.startup_validator import StartupValidationError, validate_startup_config

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Bookings API",
    version="1.0.0",
)

# Load settings for CORS configuration
settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(services.router)
app.include_router(bookings.router)

# Include webhook routers
app.include_router(payments.router, prefix="/webhook", tags=["webhooks"])


# =========================================================================
# STARTUP VALIDATION
# =========================================================================
@app.on_event("startup")
async def startup_config_validation():
    """
    Validate critical configuration at startup.

    Raises:
        StartupValidationError: If critical configuration is invalid
    """
    logger.info("Running API startup configuration validation...")
    try:
        await validate_startup_config(require_payments=True)
        logger.info("API startup configuration validation passed")
    except StartupValidationError as e:
        logger.critical(f"API startup blocked due to configuration errors: {e}")
        raise  # FastAPI will fail to start


# Exception handlers for validation errors
@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with validation error details."""
    return validation_error_response(exc.errors())


@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Return 400 with validation error details."""
    return validation_error_response(exc.errors())


def jsonable_errors(errors) -> list[dict]:
    # ctx may hold exception instances
    return [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in errors
    ]


def validation_error_response(errors) -> JSONResponse:
    body = ErrorResponse(
        error_code="VALIDATION_ERROR",
        error_message="Validation error",
        details=jsonable_errors(errors),
    )
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - Database connectivity (SELECT 1 query)
    - Circuit breaker states for the event hub and notifications (informational)

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
    }
    status_code = 200

    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["database"] = "connected"
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        health_status["database"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    health_status["circuit_breakers"] = {
        name: breaker["state"] for name, breaker in get_breaker_status().items()
    }

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Bookings API - Use /health for health checks"}
