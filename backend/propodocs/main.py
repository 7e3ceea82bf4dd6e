"""
Propodocs Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers;
       uvicorn serves the module-level `app` (uvicorn propodocs.main:app).

Application Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │                       FastAPI App                         │
    │                                                           │
    │  Middleware:  Request ID → Logging → Rate Limit → GZip    │
    │                                                → CORS     │
    │                                                           │
    │  Routes:                                                  │
    │   /api/analytics/*   /api/calculators/*   /api/ai/*       │
    │   /health                                                 │
    │                                                           │
    │  Exception Handlers:                                      │
    │   Validation→400  Auth→401  NotFound→404  RateLimit→429   │
    │   AllProvidersFailed→502  ProvidersUnconfigured→503       │
    │   Database→500  anything else→500                         │
    └───────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check (logged, not fatal), rate limit
              sweeper task
    Shutdown: stop the sweeper, dispose the database engine
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from propodocs import __version__
from propodocs.config import settings
from propodocs.database import dispose_engine
from propodocs.exceptions import (
    AllProvidersFailedError,
    AuthenticationError,
    DatabaseError,
    NotFoundError,
    PropodocsError,
    ProviderError,
    ProvidersUnconfiguredError,
    RateLimitExceededError,
    ValidationError,
)
from propodocs.middleware.logging import RequestLoggingMiddleware
from propodocs.middleware.rate_limit import RateLimitMiddleware, standard_store, strict_store
from propodocs.middleware.request_id import RequestIDMiddleware, request_id_var
from propodocs.routes import ai, analytics, calculators, health

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: 2025-01-15T12:00:00 [INFO] propodocs.services.analytics_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Chatty third-party loggers
    for name in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "anthropic", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

async def sweep_rate_limits(interval: int) -> None:
    """Periodically drop expired rate limit windows until cancelled."""
    while True:
        await asyncio.sleep(interval)
        removed = standard_store.sweep() + strict_store.sweep()
        if removed:
            logger.debug("Rate limit sweeper removed %d expired windows", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Propodocs Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: health checks and tracking still work without AI keys
        logger.error("Configuration error: %s", e)

    logger.info("AI provider order: %s", ", ".join(settings.provider_order_list))
    sweeper = asyncio.create_task(sweep_rate_limits(settings.rate_limit_sweep_interval))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Propodocs Backend shutting down...")
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to HTTP responses.

    Responses never carry stack traces, SQL or file paths; those are logged.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(
            401, "unauthorized", exc.message, headers={"WWW-Authenticate": "Bearer"}
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            429,
            "rate_limit_exceeded",
            exc.message,
            exc.context,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(ProvidersUnconfiguredError)
    async def handle_providers_unconfigured(request: Request, exc: ProvidersUnconfiguredError):
        logger.error("[%s] %s", request_id_var.get(""), exc.message)
        return _error_response(503, "ai_not_configured", exc.message)

    @app.exception_handler(AllProvidersFailedError)
    async def handle_all_providers_failed(request: Request, exc: AllProvidersFailedError):
        logger.error("[%s] All AI providers failed: %s", request_id_var.get(""), exc.attempts)
        return _error_response(
            502, "all_providers_failed", exc.message, {"attempts": exc.attempts}
        )

    @app.exception_handler(ProviderError)
    async def handle_provider_error(request: Request, exc: ProviderError):
        # Normally absorbed by the generation chain; reaching here is a bug
        logger.error("[%s] Unhandled provider error: %s", request_id_var.get(""), exc.message)
        return _error_response(502, "provider_error", "The AI provider request failed.")

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return _error_response(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(PropodocsError)
    async def handle_application_error(request: Request, exc: PropodocsError):
        logger.error("[%s] Application error: %s", request_id_var.get(""), exc.message)
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), exc, exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Propodocs API",
        description=(
            "Proposal analytics (view tracking, engagement dashboards, pipeline value) "
            "and multi-provider AI generation of pricing calculators and proposal content."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → RateLimit → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(analytics.router)
    app.include_router(calculators.router)
    app.include_router(ai.router)
    app.include_router(health.router)

    return app


app = create_app()
