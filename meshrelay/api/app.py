"""FastAPI application factory with lifespan for MeshRelay."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from meshrelay import __version__
from meshrelay.runtime import RelayRuntime
from meshrelay.settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: seed directory, start webhook workers. Shutdown: close clients."""
    runtime: RelayRuntime = app.state.runtime
    await runtime.ensure_seeded()
    runtime.dispatcher.start()
    logger.info(f"{runtime.settings.app_name} ready (stream backend: {runtime.settings.stream_url})")
    yield
    await runtime.aclose()


def create_app(runtime: RelayRuntime | None = None) -> FastAPI:
    settings = runtime.settings if runtime else get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime or RelayRuntime(settings)

    # ── mount routers ──
    from meshrelay.api.routes import acs_webhook, ai, chat, health

    app.include_router(health.router)
    app.include_router(ai.router, prefix="/ai", tags=["ai"])
    app.include_router(acs_webhook.router, tags=["acs"])
    app.include_router(chat.router, tags=["chat"])

    return app
