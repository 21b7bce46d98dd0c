"""
api/main.py -- FastAPI application entry point for tokenauth.

Run with:  uvicorn asgi:app --host 0.0.0.0 --port 19253

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- Access-Control-Allow-Origin: * on every response
  2. log_requests   -- method, path, status, latency, client address

Lifespan creates the three pieces of shared state and injects them through
app.state (no module-level singletons):
  app.state.user_store -- UserStore (SQLAlchemy engine)
  app.state.tokens     -- TokenCache (starts its sweep thread)
  app.state.limiter    -- RateLimiter
  app.state.auth_core  -- AuthCore wired to the above
  app.state.trusted_proxies -- peers whose X-Real-IP header is believed
Shutdown stops the sweep thread and disposes the engine.

Every AuthError raised by a handler is rendered here into the ErrorResponse
envelope with the exception's own status code.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text

from api.limiter import RateLimiter, client_address
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.core import AuthCore
from auth.store import UserStore
from cache.store import TokenCache
from core.config import get_settings
from core.errors import AuthError, RateLimited

__version__ = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokenauth.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared state on startup and release it on shutdown.

    The store comes first because AuthCore needs it; the token cache starts
    its sweep thread on construction.
    """
    settings = get_settings()
    logger.info("tokenauth starting up")
    app.state.user_store = UserStore(settings.db_url)
    app.state.tokens = TokenCache(
        ttl_seconds=settings.token_ttl_seconds,
        sweep_interval_seconds=settings.token_sweep_interval_seconds,
    )
    app.state.limiter = RateLimiter(
        window_seconds=settings.rate_limit_window_seconds,
        max_events=settings.rate_limit_max_events,
    )
    app.state.auth_core = AuthCore(app.state.user_store, app.state.tokens)
    app.state.trusted_proxies = frozenset(settings.trusted_proxies)
    logger.info(
        "Auth initialized (token_ttl=%ss, sweep_interval=%ss, rate_limit=%d/%ss)",
        settings.token_ttl_seconds,
        settings.token_sweep_interval_seconds,
        settings.rate_limit_max_events,
        settings.rate_limit_window_seconds,
    )

    yield

    app.state.tokens.close()
    app.state.user_store.close()
    logger.info("tokenauth shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="tokenauth",
    description="Username/password accounts with single-use session tokens.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


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
        client_address(request),
    )
    return response


app.include_router(auth_router, tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an AuthError with its own status code and code.

    Server faults (StoreFailure, HashingFailure) are logged with the chained
    cause; the client only sees the generic message.
    """
    if exc.is_server_fault:
        logger.error(
            "[%s:%s] server fault: %s",
            client_address(request),
            request.url.path,
            exc.code,
            exc_info=exc.__cause__ or exc,
        )
    else:
        logger.info("[%s:%s] rejected: %s", client_address(request), request.url.path, exc.code)
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    if isinstance(exc, RateLimited):
        response.headers["Retry-After"] = str(exc.retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails validation."""
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
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
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
# Liveness
#
# Not rate limited -- load balancers and monitoring must never be throttled.
# ---------------------------------------------------------------------------


@app.get("/ping", response_class=PlainTextResponse, tags=["Health"])
async def ping(request: Request) -> str:
    return f"Ping! {client_address(request)}"


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and a database round-trip check."""
    database = "ok"
    try:
        with request.app.state.user_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check database probe failed")
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=__version__,
        components={"app": "ok", "database": database},
    )
