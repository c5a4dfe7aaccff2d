"""Liveness and service-info endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

from amana import __version__

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/")
async def index(request: Request) -> dict[str, object]:
    rt = request.app.state.runtime
    return {
        "name": rt.settings.app_name,
        "version": __version__,
        "backend": rt.settings.backend,
        "telegram": rt.shell is not None,
        "voice": bool(rt.voice and rt.voice.available),
    }
