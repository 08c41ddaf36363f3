"""
Expense Tracker API — FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app(application) returns a configured FastAPI
       instance bound to an Application aggregate.
Who:   `python -m app` (process runner) and external ASGI servers
       (`uvicorn app.main:app`).

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌────────┐ ┌────────────┐ ┌─────────┐ ┌────────┐   │
    │  │ Req ID │→│ Body limit │→│ Logging │→│  CORS  │   │
    │  └────────┘ └────────────┘ └─────────┘ └────────┘   │
    │                                                     │
    │  Routes:                                            │
    │  GET /  GET /health  GET /health/ready              │
    │  POST /api/auth/register  POST /api/auth/login      │
    │  [auth gate] GET /api/protected  GET /api/me        │
    │                                                     │
    │  Exception Handlers:                                │
    │  AppError→status │ 404→route_not_found │ *→500      │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, config validation, background database connect
    Shutdown: database close (unless the ShutdownCoordinator is draining,
              in which case it closes the database after the listener stops)
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__
from app.application import Application
from app.config import Settings, settings as default_settings
from app.exceptions import AuthError, ExpenseTrackerError, RouteNotFoundError
from app.middleware.body_limit import BodySizeLimitMiddleware
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, current_request_id
from app.routes import auth, health, protected, root
from app.schemas.errors import error_body

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    What:    One stdout handler on the root logger, consistent format.
    When:    Called by the process runner before anything else, and again by
             the lifespan (idempotent thanks to force=True).
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # Third-party loggers that are chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:
        1. Setup logging
        2. Validate configuration (ConfigError aborts startup in production)
        3. Start the database connect in the background (non-blocking)

    Shutdown:
        Close the database connection (see module docstring)
    """
    application: Application = app.state.application
    setup_logging(application.settings.log_level)
    logger.info("=" * 60)
    logger.info(
        "Expense Tracker API %s starting (%s)",
        __version__,
        application.settings.environment.value,
    )

    try:
        await application.startup()
    except ExpenseTrackerError as e:
        logger.error("Startup failed: %s", e.message)
        raise

    logger.info("=" * 60)

    yield  # Application runs here

    logger.info("Expense Tracker API shutting down...")
    await application.shutdown()
    logger.info("Lifespan shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """
    Map exceptions to `{success: false, error, code, request_id}` responses.

    Handler hierarchy:
        ExpenseTrackerError     → its own status_code (401, 404, 409, 503, ...)
        HTTPException (404)     → 404 "Route not found: <METHOD> <path>"
        HTTPException (other)   → its status (e.g. 405)
        RequestValidationError  → 400 with field details
        Exception (fallback)    → status from the error or 500; message and
                                  stack only outside production
    """

    @app.exception_handler(ExpenseTrackerError)
    async def handle_app_error(request: Request, exc: ExpenseTrackerError):
        rid = current_request_id(request)
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", rid, exc.code, exc.message)

        headers = None
        if isinstance(exc, AuthError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.code, request_id=current_request_id(request)),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            not_found = RouteNotFoundError(request.method, request.url.path)
            return JSONResponse(
                status_code=404,
                content=error_body(not_found.message, not_found.code, request_id=current_request_id(request)),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail), "http_error", request_id=current_request_id(request)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_body(
                "Request validation failed",
                "validation_error",
                request_id=current_request_id(request),
                details=jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """
        Catch-all for unexpected errors at the request boundary.

        Production: generic message, no stack. Development: the exception
        message and the formatted traceback.

        Runs outside every middleware, so the X-Request-ID header is set here.
        """
        rid = current_request_id(request)
        headers = {"X-Request-ID": rid} if rid else None
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)

        status_code = getattr(exc, "status_code", 500)
        if not isinstance(status_code, int) or not 400 <= status_code <= 599:
            status_code = 500

        if settings.is_production:
            return JSONResponse(
                status_code=status_code,
                content=error_body(
                    "Internal Server Error", "internal_server_error", request_id=rid
                ),
                headers=headers,
            )
        return JSONResponse(
            status_code=status_code,
            content=error_body(
                str(exc) or "Internal Server Error",
                "internal_server_error",
                request_id=rid,
                stack=traceback.format_exception(type(exc), exc, exc.__traceback__),
            ),
            headers=headers,
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(application: Optional[Application] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        application: The aggregate to serve; a default one is built from the
                     module-level settings when omitted.

    Returns:
        Configured FastAPI instance, also stored as `application.api`.
    """
    if application is None:
        application = Application(default_settings)
    settings = application.settings

    app = FastAPI(
        title="Smart Expense Tracker API",
        description="Authentication, health and lifecycle core of the expense tracker backend.",
        version=__version__,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production else "/openapi.json",
        lifespan=lifespan,
    )
    app.state.application = application
    application.api = app

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added executes first: RequestID → BodyLimit → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=sorted(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_body_size)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app, settings)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(protected.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# `uvicorn app.main:app` imports this; `python -m app` builds its own
app = create_app()
