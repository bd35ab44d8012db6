"""
api/main.py -- FastAPI application entry point for Express Connect.

This module is the composition root: it is the only place that calls
get_settings() to build the services, and it wires them into app.state.
auth/ and notify/ receive Settings through their constructors.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- method, path, status, latency for every request
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- CORS headers for the browser client origin, on
                              gate 401s and redirects too
  4. SlowAPIMiddleware     -- per-route rate limits from api.limiter
  5. authorization_gate    -- auth.gate.authorize() on every request; redirects,
                              401s, or forwards and renews the session cookie

Lifespan builds the account store, notifier and services on startup and
disposes of them on shutdown, symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from api.limiter import configure_credential_limit, limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.credentials import CredentialService
from auth.dependencies import read_session
from auth.errors import AuthError
from auth.gate import Action, authorize
from auth.orchestrator import AuthOrchestrator
from auth.store import AccountStore
from auth.tokens import (
    SESSION_COOKIE,
    clear_session_cookie,
    create_session_token,
    needs_refresh,
    set_session_cookie,
)
from core.config import get_settings
from notify import build_notifier

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("expressconnect.api")

_settings = get_settings()
configure_credential_limit(_settings.login_rate_limit)

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired one-time codes every hour.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(60 * 60)
        try:
            removed = await run_in_threadpool(app.state.store.purge_expired_codes)
        except SQLAlchemyError:
            logger.exception("Expired code purge failed")
            continue
        if removed:
            logger.info("Purged %d expired sign-in codes", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup, dispose of them on shutdown.

    Startup order matters: store, then notifier, then the services that take
    both, then the purge task that references the store.
    """
    logger.info("Express Connect auth API starting up")
    settings = get_settings()
    app.state.settings = settings
    app.state.store = AccountStore(settings.database_url, timeout=settings.store_timeout_seconds)
    app.state.notifier = build_notifier(settings)
    app.state.credentials = CredentialService(app.state.store, app.state.notifier, settings)
    app.state.orchestrator = AuthOrchestrator(app.state.store, app.state.credentials, app.state.notifier, settings)
    logger.info("Auth initialized (notifier=%s, code delivery=%s)", settings.notifier_backend, settings.email_code_delivery)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.store.close()
    logger.info("Express Connect auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Express Connect Auth API",
    description="Sign-in, password reset, and tenant-scoped authorization for Express Connect.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Authorization gate middleware
#
# Every request is decided by auth.gate.authorize() before any route runs.
# Gate outcomes are responses, never exceptions.
# ---------------------------------------------------------------------------


def _unauthorized_response() -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content=ErrorResponse(error=ErrorDetail(code="unauthorized", message="Unauthorized")).model_dump(),
    )


def _sets_session_cookie(response) -> bool:
    prefix = f"{SESSION_COOKIE}="
    return any(value.startswith(prefix) for value in response.headers.getlist("set-cookie"))


async def authorization_gate(request: Request, call_next):
    """Forward, redirect, or reject according to the session claims.

    On forward, the resolved claims are stored on request.state so handlers do
    not decode the JWT twice. Once a session is past half its lifetime the
    claims are rebuilt from the account row and re-signed into a fresh cookie;
    if the account no longer exists the cookie is cleared instead. A response
    that already sets or clears the session cookie (sign-in, sign-out) is
    left alone.
    """
    if request.method == "OPTIONS":
        # Preflights are answered by CORSMiddleware before reaching here.
        return await call_next(request)

    claims, payload = read_session(request)
    path = request.url.path
    decision = authorize(path, claims)

    if decision.action is Action.REDIRECT:
        if decision.reason is not None:
            logger.info("Gate redirect %s -> %s (%s)", path, decision.location, decision.reason.value)
        return RedirectResponse(decision.location, status_code=302)
    if decision.action is Action.REJECT:
        logger.info("Gate reject %s (%s)", path, decision.reason.value if decision.reason else "-")
        return _unauthorized_response()

    request.state.session_claims = claims
    response = await call_next(request)

    settings = request.app.state.settings
    if claims is None or payload is None or _sets_session_cookie(response):
        return response
    if needs_refresh(payload, settings.session_max_age_seconds):
        fresh = await run_in_threadpool(request.app.state.orchestrator.refresh_claims, claims)
        if fresh is None:
            clear_session_cookie(response)
        else:
            token = create_session_token(fresh, settings.secret_key, settings.session_max_age_seconds)
            set_session_cookie(response, token, settings.session_max_age_seconds, settings.secure_cookies)
    return response


# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() inserts at the outside, so the first registration is the
# innermost layer. The gate goes first so its 401s and redirects still pass
# through CORS and the Host check.
# ---------------------------------------------------------------------------

app.add_middleware(BaseHTTPMiddleware, dispatch=authorization_gate)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.base_url],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Registered last so it is outermost: gate redirects, rejects and bad Host
# headers are logged too.
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

app.include_router(auth_router, prefix="/api", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map an AuthError to its status and public message.

    exc.internal (which half of a credential pair failed, notifier error text)
    is logged for operators and never sent to the client.
    """
    if exc.internal:
        logger.info("%s on %s: %s", exc.code, request.url.path, exc.internal)
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error field.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Public (listed in auth.gate.PUBLIC_API_PREFIXES) and not rate limited.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and account-store reachability."""
    try:
        request.app.state.store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: account store unreachable")
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
