"""FastAPI application factory with lifespan for Amana."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from amana import __version__
from amana.runtime.wiring import Runtime, build_runtime
from amana.settings import get_settings


def create_app(runtime: Runtime | None = None) -> FastAPI:
    settings = runtime.settings if runtime is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Startup: build the runtime. Shutdown: drain cycles, close clients."""
        rt = runtime or build_runtime(settings)
        app.state.runtime = rt
        await rt.start()
        logger.info(f"{settings.app_name} ready (backend={settings.backend}, tz={settings.timezone})")
        yield
        await rt.aclose()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )

    # ── mount routers ──
    from amana.api.routes import health, remote_exec, telegram_webhook

    app.include_router(health.router)
    app.include_router(telegram_webhook.router, tags=["telegram"])
    app.include_router(remote_exec.router, prefix="/amana", tags=["exec"])

    return app
