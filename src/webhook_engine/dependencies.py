from functools import lru_cache

import aiosqlite
from fastapi import Depends, Request

from webhook_engine.config import Settings
from webhook_engine.outbound import OutboundPublisher
from webhook_engine.providers import Provider, build_providers


@lru_cache
def get_settings() -> Settings:
    return Settings()


async def get_db(request: Request) -> aiosqlite.Connection:
    return request.app.state.db


async def get_publisher(request: Request) -> OutboundPublisher | None:
    return getattr(request.app.state, "publisher", None)


async def get_providers(
    request: Request,
    db: aiosqlite.Connection = Depends(get_db),
    publisher: OutboundPublisher | None = Depends(get_publisher),
) -> dict[str, Provider]:
    providers = getattr(request.app.state, "providers", None)
    if providers is None:
        providers = build_providers(request.app.state.settings, db, publisher)
        request.app.state.providers = providers
    return providers