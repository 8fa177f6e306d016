"""
FastAPI application factory.

* Registers routes for customers, drivers and admin.
* Builds the negotiation engine and its collaborators (geocoder, cache,
  notifier) on startup; drains pending notifications and releases HTTP,
  Redis and database resources on shutdown.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

import httpx
from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from slidebid.api.errors import register_error_handlers
from slidebid.api.middleware import limiter
from slidebid.api.routes import admin, driver, requests
from slidebid.config import settings
from slidebid.domain.pricing import PricingEngine
from slidebid.infrastructure.cache import MemoryKeyValueStore, RedisKeyValueStore
from slidebid.infrastructure.database import async_session_factory, engine as db_engine
from slidebid.infrastructure.redis_client import create_redis
from slidebid.services.geocoding import GoogleGeocoder
from slidebid.services.negotiation import NegotiationEngine
from slidebid.services.notifications import (
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the engine on startup unless one was injected; clean up on shutdown."""
    if app.state.engine is not None:
        yield
        await app.state.engine.wait_for_notifications()
        return

    http_client = httpx.AsyncClient(timeout=settings.geocoding_timeout_seconds)
    if settings.cache_backend == "memory":
        cache = MemoryKeyValueStore(max_entries=settings.memory_cache_max_entries)
    else:
        cache = RedisKeyValueStore(create_redis(settings.redis_url))

    if settings.notification_webhook_url:
        notifier = WebhookNotificationDispatcher(
            settings.notification_webhook_url,
            http_client,
            timeout=settings.notification_timeout_seconds,
        )
    else:
        notifier = LoggingNotificationDispatcher()

    app.state.engine = NegotiationEngine(
        async_session_factory,
        pricing=PricingEngine.from_settings(settings),
        notifier=notifier,
        geocoder=GoogleGeocoder(
            http_client,
            settings.geocoding_api_key,
            cache,
            url=settings.geocoding_url,
            cache_ttl_seconds=settings.geocoding_cache_ttl_seconds,
        ),
        h3_resolution=settings.h3_resolution,
        h3_max_ring=settings.h3_max_ring,
        default_radius_km=settings.default_search_radius_km,
    )
    logger.info("Negotiation engine ready (cache=%s)", settings.cache_backend)
    try:
        yield
    finally:
        await app.state.engine.wait_for_notifications()
        await http_client.aclose()
        if isinstance(cache, RedisKeyValueStore):
            await cache.close()
        await db_engine.dispose()


def create_app(engine: Optional[NegotiationEngine] = None) -> FastAPI:
    app = FastAPI(
        title="SlideBid API",
        description=(
            "Customers request tow-truck slides, drivers compete with price "
            "offers, and each booking moves through a strict lifecycle from "
            "acceptance to completion or cancellation."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_error_handlers(app)

    # Routers
    app.include_router(requests.router, prefix="/api/v1")
    app.include_router(driver.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
