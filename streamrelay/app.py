"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from .core.config import Settings, get_settings
from .core.database import DatabaseManager, PoolConfig
from .core.dependencies import enforce_api_rate_limits, get_database_manager, get_metrics
from .core.logging import setup_logging
from .core.metrics import RelayMetrics
from .core.rate_limiter import RateLimiters
from .core.webhook_guard import IdempotencyGuard
from .repositories import DeliveryLogRepository, RecipientResolver, StreamerRepository
from .routers.webhooks_router import create_webhook_router
from .services import (
    DiscordAPIClient,
    NotificationDispatcher,
    SignatureVerifier,
    TemplateRenderer,
    TwitchAPIClient,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "streamrelay"
SERVICE_VERSION = "1.0.0"


async def _sweep_loop(name: str, interval: float, sweep: Callable[[], int]) -> None:
    """Run *sweep* every *interval* seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = sweep()
            if removed:
                logger.debug(f"{name} sweep removed {removed} entr{'y' if removed == 1 else 'ies'}")
        except Exception as e:
            logger.exception(f"{name} sweep failed: {e}")


async def _start_delivery_stack(app: FastAPI, settings: Settings) -> None:
    """Connect the database and build the dispatcher with its collaborators."""
    db_manager = DatabaseManager(settings.database_url, PoolConfig(ssl=settings.database_ssl))
    app.state.db_manager = db_manager
    await asyncio.wait_for(db_manager.connect(), timeout=30)
    logger.info("Database connected")

    delivery_log = DeliveryLogRepository(db_manager.pool)
    await delivery_log.ensure_table()

    twitch_api = TwitchAPIClient(
        settings.client_id,
        settings.client_secret,
        timeout=settings.http_timeout_seconds,
    )
    discord_api = DiscordAPIClient(
        settings.discord_bot_token,
        timeout=settings.http_timeout_seconds,
        # A 429 backoff must leave room for the retry inside the send budget
        max_retry_wait=settings.delivery_timeout_seconds / 2,
    )
    app.state.http_clients = [twitch_api, discord_api]

    app.state.dispatcher = NotificationDispatcher(
        streamers=StreamerRepository(db_manager.pool),
        recipients=RecipientResolver(db_manager.pool),
        delivery_log=delivery_log,
        streams=twitch_api,
        sender=discord_api,
        renderer=TemplateRenderer(settings.thumbnail_resolution),
        metrics=app.state.metrics,
        delivery_timeout=settings.delivery_timeout_seconds,
    )


async def _start_retry_loop(app: FastAPI, settings: Settings) -> None:
    """Keep retrying the delivery stack after a failed startup."""
    delay = 5
    max_delay = 60
    while True:
        await asyncio.sleep(delay)
        try:
            await _start_delivery_stack(app, settings)
            logger.info("Delivery stack started (background retry)")
            return
        except asyncio.CancelledError:
            return
        except Exception as e:
            await _close_delivery_stack(app)
            delay = min(delay * 2, max_delay)
            logger.warning(f"Delivery stack retry failed: {type(e).__name__}: {e}, next retry in {delay}s")


async def _close_delivery_stack(app: FastAPI) -> None:
    for client in getattr(app.state, "http_clients", []):
        await client.close()
    app.state.http_clients = []
    db_manager = getattr(app.state, "db_manager", None)
    if db_manager is not None:
        await db_manager.disconnect()
        app.state.db_manager = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    settings: Settings = app.state.settings
    app.state.start_time = time.time()

    logger.info(f"Starting {SERVICE_NAME} webhook relay")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"EventSub callback path: {settings.webhook_path}")

    tasks: list[asyncio.Task] = []
    if getattr(app.state, "dispatcher", None) is None:
        try:
            await _start_delivery_stack(app, settings)
        except Exception as e:
            # Webhooks answer 503 meanwhile, so Twitch keeps redelivering
            logger.error(
                f"Delivery stack failed to start: {type(e).__name__}: {e}, retrying in background"
            )
            await _close_delivery_stack(app)
            tasks.append(asyncio.create_task(_start_retry_loop(app, settings)))

    tasks += [
        asyncio.create_task(
            _sweep_loop("Idempotency guard", settings.idempotency_sweep_interval_seconds, app.state.guard.sweep)
        ),
        asyncio.create_task(
            _sweep_loop("Rate limiter", settings.rate_limit_sweep_interval_seconds, app.state.limiters.sweep)
        ),
    ]

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    try:
        await _close_delivery_stack(app)
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


def create_app(
    settings: Settings | None = None,
    *,
    dispatcher: NotificationDispatcher | None = None,
    metrics: RelayMetrics | None = None,
    verifier: SignatureVerifier | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """Create and configure FastAPI application

    Passing *dispatcher* skips the database and outbound clients entirely;
    *clock* drives the rate limiters and the idempotency guard.
    """
    settings = settings or get_settings()

    # Setup logging first
    setup_logging(settings)

    app = FastAPI(
        title="streamrelay",
        description="Twitch EventSub to Discord go-live notification relay",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.state.settings = settings
    app.state.start_time = time.time()
    app.state.metrics = metrics or RelayMetrics()
    app.state.limiters = RateLimiters.from_settings(settings, clock=clock)
    app.state.guard = IdempotencyGuard(settings.idempotency_ttl_seconds, clock=clock)
    app.state.verifier = verifier or SignatureVerifier(
        settings.twitch_webhook_secret,
        max_age_seconds=settings.signature_max_age_seconds,
    )
    app.state.dispatcher = dispatcher

    app.include_router(create_webhook_router(settings.webhook_path))

    api_limits = [Depends(enforce_api_rate_limits)]

    # Root endpoint
    @app.get("/", dependencies=api_limits)
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": SERVICE_NAME, "status": "running"}

    # Liveness probe, always 200, no external dependency
    @app.get("/health", dependencies=api_limits)
    async def health(request: Request):
        """Liveness check (no DB dependency)"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - request.app.state.start_time),
        }

    # Detailed status endpoint (includes DB health)
    @app.get("/status", dependencies=api_limits)
    async def status(request: Request):
        """Readiness / status endpoint, includes actual DB health check"""
        db_manager = get_database_manager(request)
        db_ok = db_manager is not None and await db_manager.check_health()
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "uptime_seconds": int(time.time() - request.app.state.start_time),
            "db_connected": db_ok,
            "dispatcher_ready": request.app.state.dispatcher is not None,
            "environment": settings.environment,
        }

    # Ping endpoint
    @app.api_route(
        "/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse, dependencies=api_limits
    )
    async def ping():
        """Ping endpoint"""
        return "pong"

    @app.get("/metrics", dependencies=api_limits)
    async def metrics_endpoint(request: Request):
        relay_metrics = get_metrics(request)
        return Response(content=relay_metrics.export(), media_type=relay_metrics.content_type)

    logger.info("FastAPI application configured")

    return app
