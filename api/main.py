"""
api/main.py -- FastAPI application entry point for Passgate.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins;
                              credentials allowed so the token cookies travel
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every component once from the single Settings object and
parks it on app.state: stores, hasher, token issuer, cookie carrier, session
verifier, message dispatcher, media store and the AuthFlows orchestrator.
Shutdown tears them down in reverse.
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
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.carrier import CookieCarrier
from auth.credentials import CredentialStore
from auth.errors import AuthFlowError
from auth.flows import AuthFlows
from auth.passwords import PasswordHasher
from auth.session import SessionVerifier
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings
from media.store import LocalMediaStore, build_media_store
from messaging.dispatcher import MessageDispatcher

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("passgate.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired codes and reset tokens every `interval` seconds.

    Expired rows already never match a lookup; this only keeps the tables
    small. The purge itself is a blocking DB call, so it runs in a worker
    thread. CancelledError from task.cancel() unwinds the loop on shutdown.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(app.state.credentials.purge_expired)
        except SQLAlchemyError:
            logger.exception("Purge of expired credentials failed")
            continue
        if removed:
            logger.info("Purged %d expired pending credentials", removed)


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_components(app: FastAPI, settings: Settings, dispatcher=None, media=None) -> None:
    """Construct every component from one Settings object and attach it to app.state.

    dispatcher and media replace the configured outbound collaborators (tests).
    """
    app.state.settings = settings
    app.state.user_store = UserStore(settings.database_url)
    app.state.credentials = CredentialStore(settings.database_url)
    app.state.hasher = PasswordHasher(settings.bcrypt_rounds)
    app.state.issuer = TokenIssuer(settings)
    app.state.carrier = CookieCarrier(settings)
    app.state.session_verifier = SessionVerifier(app.state.issuer)
    app.state.dispatcher = dispatcher if dispatcher is not None else MessageDispatcher(settings)
    app.state.media = media if media is not None else build_media_store(settings)
    app.state.flows = AuthFlows(
        settings,
        users=app.state.user_store,
        credentials=app.state.credentials,
        hasher=app.state.hasher,
        issuer=app.state.issuer,
        dispatcher=app.state.dispatcher,
        media=app.state.media,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The purge task starts last because it references the
    credential store.
    """
    logger.info("Passgate API starting up")
    build_components(app, _settings)
    logger.info("Stores initialized (%s)", app.state.user_store.engine.url.render_as_string(hide_password=True))
    app.state.purge_task = asyncio.create_task(_purge_loop(app, _settings.purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    app.state.dispatcher.close()
    app.state.credentials.close()
    app.state.user_store.close()
    logger.info("Passgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Passgate API",
    description="One-time codes, password login with access/renewal tokens, and password reset.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# Local avatars are served straight from MEDIA_ROOT. check_dir=False: the
# directory is created on first upload.
if not _settings.cloudinary_cloud_name:
    app.mount(
        LocalMediaStore.url_prefix,
        StaticFiles(directory=_settings.media_root, check_dir=False),
        name="media",
    )

# ---------------------------------------------------------------------------
# Request logging middleware
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
# All handlers return the same ErrorResponse envelope ({code, message}) so
# API clients can parse errors uniformly.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(code=code, message=message).model_dump())


@app.exception_handler(AuthFlowError)
async def auth_flow_error_handler(request: Request, exc: AuthFlowError) -> JSONResponse:
    """Render a flow failure with the status and code its class declares."""
    return _error(exc.status_code, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are input errors like missing fields: 400."""
    logger.debug("Request validation failed on %s: %s", request.url.path, exc.errors())
    return _error(400, "validation_error", "Request validation failed.")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured detail dicts (from auth.dependencies) are passed through as the envelope."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "Some problem occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit -- health checks from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database round-trip check."""
    try:
        request.app.state.user_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
