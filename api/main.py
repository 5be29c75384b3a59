"""
api/main.py -- FastAPI application entry point for FolderVault.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the stores and services on startup, starts the session
sweeper, and tears everything down in reverse on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.folders import router as folders_router
from auth.credentials import CredentialManager
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings
from core.errors import AuthFailure, FolderVaultError, TooLarge
from storage.folders import FolderStore
from storage.layout import FilesystemLayout
from storage.store import MetadataStore
from storage.uploads import FileUploadPipeline

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("foldervault.api")

# ---------------------------------------------------------------------------
# Background session sweep
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval: int) -> None:
    """Delete expired sessions every `interval` seconds.

    A failed sweep is logged and retried on the next tick; it never stops
    the loop. CancelledError from shutdown propagates out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            purged = await run_in_threadpool(app.state.sessions.sweep)
        except Exception:
            logger.exception("Session sweep failed")
            continue
        if purged:
            logger.debug("Session sweep removed %d session(s)", purged)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create stores and services, start the sweeper, close everything on shutdown.

    Startup order matters:
      1. Stores first -- they create their tables.
      2. Services second -- they only hold references to the stores.
      3. Sweep task last -- references app.state.sessions.
    """
    settings = get_settings()
    logger.info("FolderVault API starting up")

    app.state.user_store = UserStore(settings.database_url)
    app.state.metadata = MetadataStore(settings.database_url)
    app.state.layout = FilesystemLayout(settings.upload_root)
    logger.info("Stores initialized (upload_root=%s)", settings.upload_root)

    app.state.sessions = SessionManager(
        app.state.user_store,
        CredentialManager(settings.bcrypt_rounds),
        settings.secret_key,
        ttl_seconds=settings.session_ttl_seconds,
    )
    app.state.folders = FolderStore(app.state.metadata, app.state.layout)
    app.state.uploads = FileUploadPipeline(
        app.state.folders,
        app.state.metadata,
        app.state.layout,
        max_bytes=settings.max_upload_bytes,
    )
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app, settings.session_sweep_seconds))

    yield

    app.state.sweep_task.cancel()
    app.state.metadata.close()
    app.state.user_store.close()
    logger.info("FolderVault API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="FolderVault API",
    description="Per-user folders with file uploads behind server-side sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# Multipart framing (boundaries, part headers) on top of the payload itself.
_MULTIPART_OVERHEAD = 64 * 1024
_UPLOAD_PATH = re.compile(r"^/api/v1/folders/[^/]+/files/?$")


@app.middleware("http")
async def limit_upload_size(request: Request, call_next):
    """Reject uploads whose declared Content-Length cannot fit under the ceiling.

    Runs before the multipart parser spools the body. Requests without a
    Content-Length still hit the pipeline's own size check.
    """
    if request.method == "POST" and _UPLOAD_PATH.match(request.url.path):
        declared = request.headers.get("content-length", "")
        limit = get_settings().max_upload_bytes + _MULTIPART_OVERHEAD
        if declared.isdigit() and int(declared) > limit:
            logger.info("Rejected upload to %s: Content-Length %s", request.url.path, declared)
            return _error_response(TooLarge.status_code, TooLarge.code, TooLarge.message)
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(folders_router, prefix="/api/v1", tags=["Folders"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(FolderVaultError)
async def folder_vault_error_handler(request: Request, exc: FolderVaultError) -> JSONResponse:
    """Map the domain error taxonomy onto HTTP.

    5xx errors carry only the generic message; the cause is logged here.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s",
            exc.code,
            request.method,
            request.url.path,
            exc_info=exc.__cause__ or exc,
        )
    response = _error_response(exc.status_code, exc.code, exc.message)
    if isinstance(exc, AuthFailure):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body, path or form fails validation."""
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth: load balancers must always reach it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database check.

    status is "degraded" when the metadata database does not answer.
    """
    database = "ok" if request.app.state.metadata.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=__version__,
        components={"app": "ok", "database": database},
    )
