"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown of the process-scoped pieces:

1. Redis (optional): when it answers, events go out through Redis and a
   relay task feeds this process's WebSocket registry; when it doesn't,
   the broadcaster publishes to the local registry directly
2. The broadcaster singleton
3. The token sweeper background task
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rescuetrack import __version__
from rescuetrack.api import api_router
from rescuetrack.api.error_handlers import register_error_handlers
from rescuetrack.config import settings
from rescuetrack.realtime.broadcaster import init_broadcaster, shutdown_broadcaster
from rescuetrack.realtime.registry import registry

logger = structlog.get_logger()


async def _stop(task: asyncio.Task) -> None:
    """Cancel a background task. A crash it already had is logged, not raised."""
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("rescuetrack.background_task_failed", task=task.get_name())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "rescuetrack.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from rescuetrack.realtime.pubsub import RedisPublisher, close_redis, init_redis, relay_events

    relay_task = None
    try:
        await init_redis()
        logger.info("rescuetrack.redis_connected", url=settings.redis_url)
        init_broadcaster(RedisPublisher())
        relay_task = asyncio.create_task(relay_events(registry))
    except Exception as e:
        # Redis is optional: single-process fan-out still works
        logger.warning("rescuetrack.redis_unavailable", error=str(e))
        await close_redis()
        init_broadcaster(registry)

    from rescuetrack.services.token_sweeper import TokenSweeper

    sweeper = TokenSweeper()
    sweeper_task = asyncio.create_task(sweeper.run_loop())

    yield

    logger.info("rescuetrack.shutdown")

    sweeper.stop()
    await _stop(sweeper_task)

    await shutdown_broadcaster()
    if relay_task is not None:
        await _stop(relay_task)
    await close_redis()

    from rescuetrack.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="RescueTrack",
        description="Case tracking backend for animal rescue teams",
        version=__version__,
        lifespan=lifespan,
    )

    register_error_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from rescuetrack.middleware.rate_limit import RateLimitMiddleware
    from rescuetrack.middleware.request_id import RequestIdMiddleware
    from rescuetrack.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
        case_create_per_hour=settings.rate_limit_case_create_per_hour,
        upload_per_hour=settings.rate_limit_upload_per_hour,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from rescuetrack.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: rescuetrack.main:app)
app = create_app()
