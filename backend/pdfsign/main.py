"""
PDFSign Backend: FastAPI Application Factory
==============================================

What:  Builds the FastAPI application and every collaborator it depends on.
How:   create_app() constructs the Database, ObjectStore, identity provider,
       mail sender and services, attaches them to app.state, and registers
       middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn pdfsign.main:app`) and the test suite, which passes
       its own settings and collaborators.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                        FastAPI App                        │
    │                                                          │
    │  Middleware:  RateLimit → RequestID → Logging → GZip → CORS│
    │                                                          │
    │  Routes:      /pdf/upload  /pdf/sign/{id}  /pdf/list     │
    │               /pdf/delete/{documentId}  /pdf/email       │
    │               /api/files/{path}  /health                 │
    │                                                          │
    │  app.state:   database  object_store  identity           │
    │               mail_sender  signing_service               │
    │               document_service  settings  started_at     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Construction: create_app() (no network connections are opened)
    Startup:      logging setup, configuration check (logged, never fatal)
    Shutdown:     object store HTTP client closed, database engine disposed
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from pdfsign import __version__
from pdfsign.config import Settings, settings
from pdfsign.database import Database
from pdfsign.exceptions import PdfSignError, RateLimitExceededError, UnauthorizedError
from pdfsign.middleware.logging import RequestLoggingMiddleware
from pdfsign.middleware.rate_limit import RateLimitMiddleware
from pdfsign.middleware.request_id import RequestIDMiddleware, request_id_var
from pdfsign.routes import files, health, pdf
from pdfsign.services.document_service import DocumentService
from pdfsign.services.identity import TokenIdentityProvider
from pdfsign.services.mail_service import SmtpMailSender
from pdfsign.services.object_store import LocalObjectStore, ObjectStore
from pdfsign.services.signature_store import SignatureStore
from pdfsign.services.signing_service import SigningService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str) -> None:
    """Configure the root logger once, writing to stdout."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-operation chatter from third-party libraries
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "pypdf"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("PDFSign Backend %s starting up...", __version__)

    try:
        app_settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: health checks and signing keep working without mail
        logger.error("Configuration error: %s", str(e))

    logger.info("Storage directory: %s", app_settings.storage_root)
    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("PDFSign Backend shutting down...")
    await app.state.object_store.close()
    await app.state.database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> Optional[str]:
    return request_id_var.get("") or getattr(request.state, "request_id", None)


def _error_body(request: Request, error: str, message: str, details: Optional[dict] = None) -> dict:
    body = {
        "success": False,
        "error": error,
        "message": message,
        "request_id": _request_id(request),
    }
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map every exception to the `{success: false, error, message}` body.

    Handler hierarchy:
        RateLimitExceededError  → 429 + Retry-After
        UnauthorizedError       → 401 + WWW-Authenticate
        PdfSignError            → exc.status_code / exc.error_code
        RequestValidationError  → 400 validation_error
        Exception (fallback)    → 500, stack trace logged only

    Context is echoed as `details` only for 4xx errors; for server-side
    failures it can hold paths and driver messages, so it is logged instead.
    """

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.error_code, exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.error_code, exc.message),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(PdfSignError)
    async def handle_pdfsign_error(request: Request, exc: PdfSignError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error(
                "[%s] %s: %s | Context: %s",
                rid, type(exc).__name__, exc.message, exc.context,
            )
            details = None
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
            details = exc.context
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.error_code, exc.message, details),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request")
        if field:
            message = f"{field}: {message}"
        logger.warning("[%s] Request validation failed: %s", _request_id(request), message)
        return JSONResponse(
            status_code=400,
            content=_error_body(
                request,
                "validation_error",
                message,
                {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            _request_id(request),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                request,
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    object_store: Optional[ObjectStore] = None,
    identity: Optional[TokenIdentityProvider] = None,
    mail_sender: Optional[SmtpMailSender] = None,
) -> FastAPI:
    """
    Assemble the application.

    Any collaborator not passed in is built from `app_settings` (the
    environment-derived `settings` by default). Tests pass their own.
    """
    app_settings = app_settings or settings

    database = database or Database(
        app_settings.database_url,
        pool_size=app_settings.db_pool_size,
        max_overflow=app_settings.db_max_overflow,
        pool_pre_ping=app_settings.db_pool_pre_ping,
    )
    object_store = object_store or LocalObjectStore(
        storage_root=app_settings.storage_root,
        public_base_url=app_settings.public_base_url,
        fetch_timeout=app_settings.fetch_timeout,
        retry_max_attempts=app_settings.retry_max_attempts,
        retry_min_wait=app_settings.retry_min_wait,
        retry_max_wait=app_settings.retry_max_wait,
    )
    identity = identity or TokenIdentityProvider(
        app_settings.secret_key, app_settings.token_ttl_seconds
    )
    mail_sender = mail_sender or SmtpMailSender(
        host=app_settings.smtp_host,
        port=app_settings.smtp_port,
        username=app_settings.smtp_username,
        password=app_settings.smtp_password,
        use_ssl=app_settings.smtp_use_ssl,
        sender=app_settings.mail_from,
    )
    signature_store = SignatureStore()

    app = FastAPI(
        title="PDFSign API",
        description=(
            "Place text or image signature marks on PDF pages, store the signed "
            "documents and track who signed what."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.database = database
    app.state.object_store = object_store
    app.state.identity = identity
    app.state.mail_sender = mail_sender
    app.state.signing_service = SigningService(object_store, signature_store)
    app.state.document_service = DocumentService(
        object_store,
        signature_store,
        mail_sender,
        max_file_size=app_settings.max_file_size,
    )
    app.state.started_at = time.time()

    # ── Middleware (last added executes first) ────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=app_settings.rate_limit_requests,
        window_seconds=app_settings.rate_limit_window,
    )

    register_exception_handlers(app)

    app.include_router(pdf.router)
    app.include_router(files.router)
    app.include_router(health.router)

    return app


# uvicorn entry point: `uvicorn pdfsign.main:app`
app = create_app()
