"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance with its own Relay on app.state. Lifespan starts the keepalive
monitor and (optionally) Redis, and on shutdown closes every consumer
connection that is still registered.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tagrelay import __version__
from tagrelay.api import api_router
from tagrelay.config import Settings, settings
from tagrelay.logging_config import configure_logging
from tagrelay.relay.service import Relay

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown.
    """
    cfg: Settings = app.state.settings
    relay: Relay = app.state.relay

    logger.info(
        "tagrelay.starting",
        version=__version__,
        environment=cfg.environment,
        port=cfg.port,
    )

    # Redis is optional; only the rate limiter uses it
    from tagrelay.realtime.redis_client import close_redis, init_redis
    if cfg.redis_url:
        try:
            await init_redis(cfg.redis_url)
            logger.info("tagrelay.redis_connected", url=cfg.redis_url)
        except Exception as e:
            logger.warning("tagrelay.redis_unavailable", error=str(e))
    else:
        logger.info("tagrelay.redis_disabled")

    relay.start()

    yield

    # Shutdown
    logger.info("tagrelay.shutdown")
    await relay.stop()
    await close_redis()


def create_app(config: Settings | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    cfg = config or settings
    configure_logging(cfg.log_level, cfg.log_json)

    app = FastAPI(
        title="tagrelay",
        description="Correlation-routed broadcast relay — producers POST, consumers listen on WebSockets",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.relay = Relay.from_settings(cfg)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from tagrelay.middleware.rate_limit import RateLimitMiddleware
    from tagrelay.middleware.request_id import RequestIdMiddleware
    from tagrelay.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=cfg.rate_limit_rpm,
        producer_rpm=cfg.producer_rate_limit_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    # Mount the consumer WebSocket
    from tagrelay.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: tagrelay.main:app)
app = create_app()
