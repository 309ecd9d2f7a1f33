import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from webhook_engine.config import Settings
from webhook_engine.database import open_db
from webhook_engine.dependencies import get_settings
from webhook_engine.logging_setup import configure_logging
from webhook_engine.outbound import OutboundDispatcher, OutboundPublisher
from webhook_engine.providers import build_providers
from webhook_engine.router import router
from webhook_engine.store import SubscriptionStore

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level, settings.log_format)
        app.state.ready = False
        app.state.db = await open_db(settings.db_path)
        app.state.http = httpx.AsyncClient(
            timeout=settings.outbound_timeout_seconds,
            limits=httpx.Limits(max_connections=settings.outbound_max_concurrency),
        )
        dispatcher = OutboundDispatcher(app.state.http, settings)
        app.state.publisher = OutboundPublisher(dispatcher, SubscriptionStore(app.state.db))
        app.state.providers = build_providers(settings, app.state.db, app.state.publisher)
        for name, provider in app.state.providers.items():
            if not provider.secret:
                logger.warning("No signing secret configured for %s; all deliveries will be rejected", name)
        app.state.ready = True
        yield
        app.state.ready = False
        await app.state.publisher.drain()
        await app.state.http.aclose()
        await app.state.db.close()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.ready = False
    app.include_router(router)
    return app
