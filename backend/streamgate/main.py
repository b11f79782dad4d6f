"""
StreamGate Backend - FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn streamgate.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌─────────────────┐ ┌──────────────┐  │
    │  │ Req ID   │→│  Logging        │→│  CORS        │  │
    │  └──────────┘ └─────────────────┘ └──────────────┘  │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────────────────┐ ┌───────────────────────┐ │
    │  │ GET /stream          │ │ GET /health           │ │
    │  └──────────────────────┘ └───────────────────────┘ │
    │                                                     │
    │  Exception Handlers (plain text bodies):            │
    │  ┌────────────────────────────────────────────────┐ │
    │  │ Input→400 │ Auth→403 │ Admission→429 │         │ │
    │  │ Metadata→502/404 │ Content→502 │ Config→500    │ │
    │  └────────────────────────────────────────────────┘ │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (log loudly, keep serving /health)
    3. Log startup banner

    Shutdown:
    1. Close the shared upstream HTTP client
    2. Log shutdown complete
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from streamgate import __version__
from streamgate.config import settings
from streamgate.exceptions import (
    AdmissionRejectedError,
    AuthenticationError,
    ClientInputError,
    ConfigurationError,
    StreamGateError,
    UpstreamContentError,
    UpstreamFileNotFoundError,
    UpstreamMetadataError,
)
from streamgate.middleware.logging import RequestLoggingMiddleware
from streamgate.middleware.request_id import RequestIDMiddleware, request_id_var
from streamgate.routes import health, stream
from streamgate.services.admission import admission_controller
from streamgate.upstream import close_http_client

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once during app startup, before any other initialization.
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # Per-request lines come from RequestLoggingMiddleware instead.
    # httpx logs full request URLs at INFO, which include the bot token.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Run startup checks, then close upstream connections on shutdown."""
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("StreamGate %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("/stream will answer 500 until the configuration is fixed.")

    logger.info(
        "Admission ceiling: %d concurrent streams per process",
        admission_controller.max_concurrent,
    )
    if settings.default_throttle_bps:
        logger.info("Default throttle: %d bytes/s per stream", settings.default_throttle_bps)
    else:
        logger.info("Default throttle: off")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("StreamGate shutting down (%d streams active)...", admission_controller.active)
    await close_http_client()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(status_code: int, exc: StreamGateError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=status_code)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy (most specific wins):
        ClientInputError          → 400
        AuthenticationError       → 403
        AdmissionRejectedError    → 429
        UpstreamFileNotFoundError → 404
        UpstreamMetadataError     → 502
        UpstreamContentError      → 502
        ConfigurationError        → 500
        StreamGateError (base)    → 500 (includes InternalError)
        Exception (fallback)      → 500

    Security: bodies are the short public message only. Context and stack
    traces are logged server-side.
    """

    @app.exception_handler(ClientInputError)
    async def handle_client_input(request: Request, exc: ClientInputError):
        rid = request_id_var.get("")
        logger.info("[%s] Bad request: %s %s", rid, exc.message, exc.missing)
        return _error_response(400, exc)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication(request: Request, exc: AuthenticationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Token rejected: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(403, exc)

    @app.exception_handler(AdmissionRejectedError)
    async def handle_admission(request: Request, exc: AdmissionRejectedError):
        return _error_response(429, exc)

    @app.exception_handler(UpstreamFileNotFoundError)
    async def handle_file_not_found(request: Request, exc: UpstreamFileNotFoundError):
        return _error_response(404, exc)

    @app.exception_handler(UpstreamMetadataError)
    async def handle_metadata_error(request: Request, exc: UpstreamMetadataError):
        rid = request_id_var.get("")
        logger.error("[%s] Metadata error: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(502, exc)

    @app.exception_handler(UpstreamContentError)
    async def handle_content_error(request: Request, exc: UpstreamContentError):
        rid = request_id_var.get("")
        logger.error("[%s] Content error: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(502, exc)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        return _error_response(500, exc)

    @app.exception_handler(StreamGateError)
    async def handle_streamgate_error(request: Request, exc: StreamGateError):
        rid = request_id_var.get("")
        logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        return _error_response(500, exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500, stack trace logged server-side only."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return PlainTextResponse("internal error", status_code=500)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns: Fully configured FastAPI instance ready to receive requests.
    """
    app = FastAPI(
        title="StreamGate API",
        description=(
            "Signed-URL streaming proxy for Telegram-hosted files. "
            "Verifies an expiring HMAC capability token and relays the file "
            "with Range support, per-process admission control and optional throttling."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in REVERSE order of addition: RequestID → Logging → CORS

    # Browser players need Range in requests and Content-Range in responses
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["Range", "X-Request-ID"],
        expose_headers=[
            "X-Request-ID",
            "Content-Length",
            "Content-Range",
            "Accept-Ranges",
            "Content-Disposition",
        ],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(stream.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
