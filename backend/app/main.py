"""
Doll Pin API: FastAPI Application Factory
===========================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance;
       the lifespan builds the Database and ImagePipeline and puts them on
       app.state, where the route dependencies find them.
Who:   uvicorn (`uvicorn app.main:app`) and the test suite.

Application Architecture:
    ┌───────────────────────────────────────────────────────┐
    │                     FastAPI App                       │
    │                                                       │
    │  Middleware Chain:                                    │
    │  ┌──────────┐ ┌────────────┐ ┌──────┐ ┌────────────┐ │
    │  │  Req ID  │→│ Access Log │→│ GZip │→│    CORS    │ │
    │  └──────────┘ └────────────┘ └──────┘ └────────────┘ │
    │                                                       │
    │  Routes:                                              │
    │  ┌────────────┐ ┌─────────────┐ ┌──────────────────┐ │
    │  │ /api/dolls │ │ /api/upload │ │ GET / , /health  │ │
    │  └────────────┘ └─────────────┘ └──────────────────┘ │
    │  Static: /api/uploads/* (processed images)            │
    │                                                       │
    │  Exception Handlers:                                  │
    │  ┌─────────────────────────────────────────────────┐ │
    │  │ Validation→400 │ NotFound→404 │ Auth→401        │ │
    │  │ Processing/Storage→500 │ anything else→500      │ │
    │  └─────────────────────────────────────────────────┘ │
    └───────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Connect the database; create tables when DB_CREATE_SCHEMA is on
    3. Build the image pipeline over UPLOAD_DIR
    Shutdown:
    1. Dispose the database engine
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__
from app.config import settings
from app.database import Database
from app.exceptions import (
    AuthenticationError,
    DollApiError,
    NotFoundError,
    ProcessingError,
    StorageError,
    ValidationError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware, request_id_var
from app.routes import dolls, health, upload
from app.services.image_pipeline import STATIC_PREFIX, ImagePipeline
from app.services.pillow_codec import PillowCodec

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: 2024-01-15T12:00:00 [INFO] app.services.doll_service: Doll created: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party loggers are chatty at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def build_image_pipeline(upload_dir: Optional[Path] = None) -> ImagePipeline:
    return ImagePipeline(
        upload_dir=upload_dir or Path(settings.upload_dir),
        codec=PillowCodec(quality=settings.image_quality),
        max_size=settings.max_upload_size,
        max_width=settings.image_max_width,
        max_height=settings.image_max_height,
        quality=settings.image_quality,
        watermark_text=settings.watermark_text,
    )


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Doll Pin API %s starting up (env=%s)...", __version__, settings.app_env)

    database = Database(settings.database_url)
    database.connect()
    if settings.db_create_schema:
        await database.create_schema()
    app.state.database = database

    app.state.image_pipeline = build_image_pipeline()
    logger.info("Upload directory: %s", app.state.image_pipeline.upload_dir)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Doll Pin API shutting down...")
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request_id_var.get("")


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    errors: Optional[List[str]] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Build the `{success: false, error, message, ...}` failure envelope."""
    rid = _request_id(request)
    content: Dict[str, Any] = {
        "success": False,
        "error": error,
        "message": message,
    }
    if errors:
        content["errors"] = errors
    if details:
        content["details"] = details
    content["request_id"] = rid

    headers = {REQUEST_ID_HEADER: rid} if rid else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _describe_request_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to status codes and the shared failure envelope.

    Handler hierarchy:
        ValidationError          → 400
        RequestValidationError   → 400 "Validation Error"
        NotFoundError            → 404
        HTTPException            → its status ("Not Found - <path>" for 404)
        AuthenticationError      → 401
        ProcessingError          → 500 (reason in details)
        StorageError             → 500 (reason in details)
        DollApiError (base)      → 500
        Exception (fallback)     → 500, stack trace only in development
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return error_response(
            request, 400, "validation_error", exc.message,
            errors=exc.errors, details=exc.context,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [_describe_request_error(err) for err in exc.errors()]
        logger.warning("[%s] Request validation failed: %s", _request_id(request), errors)
        return error_response(request, 400, "validation_error", "Validation Error", errors=errors)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(request, 404, "not_found", exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(request, 404, "not_found", f"Not Found - {request.url.path}")
        return error_response(request, exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        logger.warning("[%s] Authentication failed: %s", _request_id(request), exc.message)
        return error_response(request, 401, exc.code, exc.message)

    @app.exception_handler(ProcessingError)
    async def handle_processing_error(request: Request, exc: ProcessingError):
        logger.error(
            "[%s] Image processing error: %s | Context: %s",
            _request_id(request), exc.message, exc.context,
        )
        return error_response(
            request, 500, "processing_error", exc.message,
            details=_reason(exc),
        )

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.error(
            "[%s] Storage error: %s | Context: %s",
            _request_id(request), exc.message, exc.context,
        )
        return error_response(
            request, 500, "storage_error", exc.message,
            details=_reason(exc),
        )

    @app.exception_handler(DollApiError)
    async def handle_app_error(request: Request, exc: DollApiError):
        logger.error("[%s] Application error: %s", _request_id(request), exc.message)
        return error_response(request, 500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True)
        details = None
        if settings.is_development:
            details = {
                "type": type(exc).__name__,
                "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return error_response(
            request, 500, "internal_server_error",
            str(exc) or "Internal Server Error",
            details=details,
        )


def _reason(exc: DollApiError) -> Optional[Dict[str, Any]]:
    reason = exc.context.get("reason")
    return {"reason": reason} if reason else None


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Assemble middleware, exception handlers, routers and the static mount.

    Tests call this directly and populate app.state themselves instead of
    running the lifespan.
    """
    app = FastAPI(
        title="Doll Pin API",
        description=(
            "Create dolls, place colored pins on their images, and upload "
            "images that are normalized to web-friendly JPEGs."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials="*" not in settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(dolls.router)
    app.include_router(upload.router)

    # ── Processed images ──────────────────────────────────────────────────
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(STATIC_PREFIX, StaticFiles(directory=upload_dir), name="uploads")

    return app


# uvicorn expects `app.main:app`
app = create_app()
