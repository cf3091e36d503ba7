"""
api/main.py -- FastAPI application entry point for the Satsang API.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  0. log_requests          -- method, path, status, latency per request
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the web client origins
  3. SessionMiddleware     -- authlib keeps the OAuth state here

Lifespan builds the identity core once (store, hasher, issuer, notifier,
service) and hangs it on app.state; route dependencies read it from there.
Nothing in auth/ holds a process-global connection.

Rate limits are applied per route by the decorators in api.limiter, so there
is no SlowAPIMiddleware in the stack.

Error envelope: every failure leaves as
    {"success": false, "error": {"code": ..., "message": ..., "details"?: ...}}
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.community import router as community_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError
from auth.notifier import LogNotifier
from auth.oauth import build_oauth
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("satsang.api")

_settings = get_settings()


def build_auth_service(settings: Settings, store: UserStore) -> AuthService:
    """Compose the identity core from settings. Shared by the lifespan and the CLI."""
    return AuthService(
        store=store,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        issuer=TokenIssuer(
            access_secret=settings.jwt_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_expire_seconds=settings.access_token_expire_seconds,
            refresh_expire_seconds=settings.refresh_token_expire_seconds,
        ),
        notifier=LogNotifier(settings.frontend_url),
        reset_expire_seconds=settings.password_reset_expire_seconds,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Store first -- everything else reads or writes through it.
      2. Service second -- composes the store with hasher, issuer, notifier.
      3. Bootstrap admin last -- needs the service (and so bcrypt).
    """
    logger.info("Satsang API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.auth_service = build_auth_service(_settings, app.state.user_store)
    app.state.oauth = build_oauth()
    if _settings.admin_email and _settings.admin_password:
        app.state.auth_service.ensure_admin(
            _settings.admin_email, _settings.admin_password, _settings.admin_full_name
        )
    logger.info("Auth initialized (database=%s)", app.state.user_store.engine.url.render_as_string())

    yield

    app.state.user_store.close()
    logger.info("Satsang API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gita Satsang API",
    description="Identity and access for the Gita Satsang community platform.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the existing stack, so the LAST registration is the
# outermost layer. Register innermost first: Session -> CORS -> TrustedHost,
# so requests meet TrustedHost first.
# ---------------------------------------------------------------------------

# authlib stores the OAuth state value here between the redirect to Google and
# the callback -- the standard CSRF defence for the authorization code flow.
# Keyed by its own secret so rotating JWT_SECRET leaves in-flight sign-ins alone.
app.add_middleware(SessionMiddleware, secret_key=_settings.session_secret)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.frontend_url, *_settings.cors_origins],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# slowapi looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time around call_next gives latency per response.
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
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(community_router, prefix="/api/v1", tags=["Community"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, details=details)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a domain error with its own status and stable code."""
    if exc.status_code >= 500:
        logger.error("Server error on %s %s: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.code, "Internal server error")
    return _error(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Auth routes get their own code so clients can tell a login lockout from
    general throttling.
    """
    if request.url.path.startswith("/api/v1/auth/"):
        response = _error(429, "AUTH_RATE_LIMIT_EXCEEDED", "Too many authentication attempts, please try again later.")
    else:
        response = _error(429, "RATE_LIMIT_EXCEEDED", "Too many requests from this IP, please try again later.")
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60) or 60))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one message per offending field."""
    details: dict[str, str] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        details[field or "body"] = err.get("msg", "Invalid value")
    return _error(400, "VALIDATION_ERROR", "Validation failed", details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404, 405, ...)."""
    code = "NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}"
    return _error(exc.status_code, code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "SERVER_ERROR", "Internal server error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. Carries no limit decorator, so load
# balancer probes are never throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "error"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
