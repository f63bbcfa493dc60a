"""
api/main.py -- FastAPI application entry point for the job portal API.

Exposes the credential and session subsystem over HTTP. Job, profile and
application CRUD routers mount beside auth_router and gate themselves with
the dependencies in auth/dependencies.py.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one access-log line per request

Rate limiting is not middleware here: each route declares its bucket with
Depends(rate_limit(...)), and the RateGuard lives on app.state so tests can
reset it.

Lifespan builds the database, stores and SessionOrchestrator on startup and
disposes the engine on shutdown. There are no background tasks; expired
ledger rows are evicted on use and by `python main.py purge-expired`.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import Envelope, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, ErrorKind
from auth.ledger import RefreshTokenLedger
from auth.rate_guard import RateGuard, default_policies
from auth.sessions import ResetLinkSender, SessionOrchestrator
from auth.store import AccountStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings
from core.db import Database
from notify.dispatcher import build_dispatcher
from profiles.store import ProfileStore

VERSION = "1.0.0"

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("jobportal.api")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def configure_state(
    app: FastAPI,
    settings: Settings,
    db: Database,
    dispatcher: Optional[ResetLinkSender] = None,
) -> None:
    """Build every store and service on one Database and attach them to app.state.

    Shared by the real lifespan and the test fixtures, so tests exercise the
    same object graph as production with only the database URL swapped.
    """
    codec = TokenCodec(settings.secret_key)
    accounts = AccountStore(db)
    ledger = RefreshTokenLedger(db, settings.secret_key)
    profiles = ProfileStore(db)
    notifier = dispatcher if dispatcher is not None else build_dispatcher(settings)
    db.create_all()

    app.state.db = db
    app.state.token_codec = codec
    app.state.accounts = accounts
    app.state.ledger = ledger
    app.state.dispatcher = notifier
    app.state.rate_guard = RateGuard.from_uri(settings.rate_limit_storage_uri)
    app.state.rate_policies = default_policies(
        window_ms=settings.rate_limit_window_ms,
        auth_max=settings.rate_limit_auth_max,
        api_max=settings.rate_limit_api_max,
        search_max=settings.rate_limit_search_max,
        upload_max=settings.rate_limit_upload_max,
    )
    app.state.sessions = SessionOrchestrator(
        db,
        accounts,
        ledger,
        codec,
        profiles,
        notifier,
        access_ttl=settings.access_token_ttl,
        refresh_ttl=settings.refresh_token_ttl,
        reset_ttl_seconds=settings.reset_token_ttl_seconds,
        frontend_url=settings.frontend_url,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Configuration errors (bad TTL strings, unknown rate-limit
    storage URI) surface here, before the first request.
    """
    logger.info("Job portal API starting up")
    db = Database(settings.database_url)
    configure_state(app, settings, db)
    logger.info(
        "Auth initialized (rate storage=%s, email provider=%s)",
        settings.rate_limit_storage_uri,
        settings.email_provider,
    )

    yield

    # ResendDispatcher holds a pooled requests.Session; ConsoleDispatcher has nothing to close.
    close_dispatcher = getattr(app.state.dispatcher, "close", None)
    if close_dispatcher is not None:
        close_dispatcher()
    db.close()
    logger.info("Job portal API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Job Portal API",
    description="Accounts, sessions and credentials for the job portal.",
    version=VERSION,
    lifespan=lifespan,
    # Interactive docs only in development; the schema lists every auth route.
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the app, so the last one added is the outermost.
# CORS is added first and TrustedHost last, so a bad Host header is rejected
# before anything else runs.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Pattern: Interceptor. Every request passes through this coroutine before
# reaching any route handler; wall-clock time around call_next is the latency.
# ---------------------------------------------------------------------------


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


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same Envelope so API clients can parse errors
# uniformly. Status comes from ErrorKind, never from message text.
# ---------------------------------------------------------------------------


def _error_response(kind: ErrorKind, message: str, headers: Optional[dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=kind.status_code,
        content=Envelope(success=False, error=kind.value, message=message).model_dump(exclude_none=True),
        headers=headers,
    )


_STATUS_TO_KIND: dict[int, ErrorKind] = {kind.status_code: kind for kind in ErrorKind}


def _error_label(status_code: int) -> str:
    """ErrorKind value when one maps to the status, else the snake_cased reason phrase (405 -> method_not_allowed)."""
    kind = _STATUS_TO_KIND.get(status_code)
    if kind is not None:
        return kind.value
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return "http_error"
    return re.sub(r"[^a-z0-9]+", "_", phrase.lower()).strip("_")


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate a flow failure into the envelope. Retry-After etc. ride along in exc.headers."""
    return _error_response(exc.kind, exc.message, exc.headers or None)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with the first validation problem as the message."""
    return _error_response(ErrorKind.VALIDATION, _first_validation_message(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and other framework-raised errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=Envelope(
            success=False, error=_error_label(exc.status_code), message=str(exc.detail)
        ).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log. The client sees the exception text only
    when DEBUG=true; in production it gets a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = f"{type(exc).__name__}: {exc}" if settings.debug else "Internal server error"
    return _error_response(ErrorKind.INTERNAL, message)


def _first_validation_message(errors: list[dict]) -> str:
    if not errors:
        return "Validation failed"
    first = errors[0]
    ctx_error = first.get("ctx", {}).get("error")
    # Our own ValueErrors carry the human message; pydantic's own errors do not.
    if isinstance(ctx_error, ValueError):
        return str(ctx_error)
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "Validation failed")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and per-component status."""
    db_ok = await run_in_threadpool(request.app.state.db.ping)
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
