"""
API Gateway -- FastAPI application factory.

Creates the FastAPI app with all routes, middleware, and the SafetyService.
This is the entrypoint for uvicorn:

    uvicorn safetygate.api.gateway:create_app --factory --host 0.0.0.0 --port 8000

Security:
  - CORS restricted to configured origins (default: localhost only)
  - Production auth check on startup
  - All external input validated at boundary

Engine errors map to HTTP statuses by code:

  VALIDATION_ERROR                400
  NOT_FOUND                       404
  NOT_DRAFT                       409
  CONCURRENT_ACTIVATION_CONFLICT  409   (retry)
  OVERRIDE_REASON_REQUIRED        422
  NO_RULES_AVAILABLE              503   (fail-closed, never a pass)
"""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Settings
from ..errors import EngineError, ErrorCode
from ..service import SafetyService
from .middleware.auth import check_production_auth
from .models.responses import ErrorResponse
from .routes import health, records, rules, sandbox

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[str, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.NOT_DRAFT: 409,
    ErrorCode.CONCURRENT_ACTIVATION_CONFLICT: 409,
    ErrorCode.OVERRIDE_REASON_REQUIRED: 422,
    ErrorCode.NO_RULES_AVAILABLE: 503,
}


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, 500)
    if status_code >= 500:
        logger.error(f"[Gateway] {request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        logger.info(f"[Gateway] {request.method} {request.url.path}: {exc.code} {exc.message}")
    body = ErrorResponse(error=exc.code, detail=exc.message, status_code=status_code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(
    settings: Settings | None = None,
    service: SafetyService | None = None,
) -> FastAPI:
    """
    Application factory -- creates and configures the FastAPI app.

    Args:
        settings: Runtime settings (loaded from the environment if None).
        service: Pre-built service, e.g. over a temporary database in tests.
    """
    check_production_auth()

    if settings is None:
        settings = service.settings if service is not None else Settings.from_env()
    if service is None:
        service = SafetyService(settings)

    application = FastAPI(
        title="safetygate API",
        description="Versioned safety and validation rule engine",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT"],
        allow_headers=["Authorization", "Content-Type", "X-Actor"],
    )
    application.add_exception_handler(EngineError, engine_error_handler)

    application.state.service = service
    application.state.start_time = time.time()

    application.include_router(health.router, tags=["Health"])
    application.include_router(rules.router, prefix="/api/v1", tags=["Rules"])
    application.include_router(sandbox.router, prefix="/api/v1", tags=["Sandbox"])
    application.include_router(records.router, prefix="/api/v1", tags=["Records"])

    logger.info("[Gateway] API gateway initialized")
    return application
