"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, database engine).
Middleware, CORS, exception handlers and routers are all registered here.

Error mapping lives here too: services raise GatehouseError subclasses
with a status code and a client-safe message; one handler turns them into
JSON. Anything else becomes a bare 500 — details go to the log, never to
the caller.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gatehouse import __version__
from gatehouse.api import api_router
from gatehouse.config import settings
from gatehouse.errors import GatehouseError
from gatehouse.providers.exchange import ExchangeRegistry

logger = structlog.get_logger()


def configure_logging() -> None:
    """structlog with request-scoped context; JSON lines outside development."""
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.debug else logging.INFO
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: FastAPI lifespan replaces on_event("startup") / on_event("shutdown").
    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "gatehouse.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from gatehouse.redis_pool import close_redis, init_redis
    try:
        await init_redis()
        logger.info("gatehouse.redis_connected")
    except Exception as e:
        logger.warning("gatehouse.redis_unavailable", error=type(e).__name__)
        # Redis is optional; sign-in works without rate limiting

    yield

    logger.info("gatehouse.shutdown")
    await close_redis()

    from gatehouse.db.engine import engine
    await engine.dispose()


async def gatehouse_error_handler(request: Request, exc: GatehouseError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("gatehouse.unhandled_error", error=type(exc).__name__)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Gatehouse",
        description="Identity resolution and session authorization",
        version=__version__,
        lifespan=lifespan,
    )
    # Deployments register their provider exchanges on this registry.
    app.state.exchanges = ExchangeRegistry()

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from gatehouse.middleware.rate_limit import RateLimitMiddleware
    from gatehouse.middleware.request_id import RequestIdMiddleware
    from gatehouse.middleware.security import SecurityHeadersMiddleware

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

    app.add_exception_handler(GatehouseError, gatehouse_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: gatehouse.main:app)
app = create_app()
