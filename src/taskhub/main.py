"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, the notification
worker, the database engine). Middleware, error handlers and routers
are all registered here.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskhub import __version__
from taskhub.api import api_router
from taskhub.config import settings
from taskhub.errors import TaskhubError, UnauthorizedError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown.
    """
    logger.info(
        "taskhub.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from taskhub.db.redis_pool import close_redis, init_redis
    try:
        await init_redis()
        logger.info("taskhub.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("taskhub.redis_unavailable", error=str(e))
        # Redis is optional; only rate limiting needs it

    from taskhub.notifications import outbox
    outbox_task = asyncio.create_task(outbox.run_loop())

    yield

    logger.info("taskhub.shutdown")

    # Let the worker flush queued emails before the loop goes away
    outbox.stop()
    try:
        await asyncio.wait_for(outbox_task, timeout=settings.outbox_shutdown_seconds)
    except asyncio.TimeoutError:
        # wait_for has cancelled the worker; whatever is still queued is lost
        logger.warning("taskhub.notification_flush_timeout", pending=outbox.pending)

    await close_redis()

    from taskhub.db.engine import engine
    await engine.dispose()


# ─── Error handlers ──────────────────────────────────────


async def handle_taskhub_error(request: Request, exc: TaskhubError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    if exc.status_code >= 500:
        logger.error("taskhub.request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
        headers=headers,
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed input is a 400, not FastAPI's default 422.

    Learn: Update commands forbid extra keys, so a body with a field
    outside the allow-list fails here, before any handler runs. That
    case gets the short "Invalid updates" message.
    """
    errors = exc.errors()
    if any(e.get("type") == "extra_forbidden" for e in errors):
        return JSONResponse(status_code=400, content={"detail": "Invalid updates"})
    # Drop "input" so rejected passwords are never echoed back
    detail = [{k: e[k] for k in ("loc", "msg", "type") if k in e} for e in errors]
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(detail)})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Taskhub",
        description="Task management API with per-user sessions",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from taskhub.middleware.rate_limit import RateLimitMiddleware
    from taskhub.middleware.request_id import RequestIdMiddleware
    from taskhub.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TaskhubError, handle_taskhub_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: taskhub.main:app)
app = create_app()
