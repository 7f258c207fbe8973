"""FastAPI application factory for relay-status."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay_status.api.routes import events, statuses
from relay_status.config.loader import load_config
from relay_status.config.models import RelayStatusConfig
from relay_status.events.emitter import EventEmitter
from relay_status.events.log import EventLog
from relay_status.events.webhook import WebhookListener
from relay_status.providers.base import StatusDataProvider
from relay_status.status.coordinator import create_status_service

logger = logging.getLogger(__name__)


def _load_config() -> RelayStatusConfig:
    try:
        return load_config()
    except (FileNotFoundError, ValueError):
        logger.warning("No usable config file, falling back to defaults")
        return RelayStatusConfig()


def create_app(
    config: RelayStatusConfig | None = None,
    provider: StatusDataProvider | None = None,
) -> FastAPI:
    config = config or _load_config()

    event_log = EventLog(config.event_log_size)
    emitter = EventEmitter()
    emitter.add_listener(event_log)
    if config.webhooks:
        emitter.add_listener(WebhookListener(config.webhooks))
    status_service = create_status_service(config, emitter=emitter, provider=provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        background: asyncio.Task[None] | None = None
        await status_service.refresh()
        if config.status.refresh_interval > 0:
            background = asyncio.create_task(
                status_service.run_periodic(config.status.refresh_interval),
                name="status-refresh-loop",
            )
        try:
            yield
        finally:
            if background is not None:
                background.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await background
            await emitter.drain()

    app = FastAPI(
        title=config.relay.name,
        version=config.relay.version,
        description="Endpoint availability status",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.status_service = status_service
    app.state.event_log = event_log
    app.state.emitter = emitter

    @app.get("/health", tags=["meta"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(statuses.router, prefix="/api")
    app.include_router(events.router, prefix="/api")

    return app


app = create_app()
