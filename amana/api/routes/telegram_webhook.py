"""Telegram webhook endpoint.

Checks the optional secret header, hands the update to the messaging
shell (parse + dedup happen before returning) and answers at once; the
dialog cycle itself runs in the background.
"""

from __future__ import annotations

import hmac
import json

from fastapi import APIRouter, Request, Response
from loguru import logger

router = APIRouter()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@router.post("/telegram/webhook")
async def telegram_webhook(request: Request) -> Response:
    rt = request.app.state.runtime
    secret = rt.settings.telegram_webhook_secret
    if secret and not hmac.compare_digest(request.headers.get(SECRET_HEADER, ""), secret):
        logger.warning("Telegram webhook called with a wrong secret token")
        return _json(403, {"ok": False})

    if rt.shell is None:
        logger.warning("Telegram update received but no channel is configured")
        return _json(200, {"ok": True})

    try:
        update = json.loads(await request.body())
        rt.shell.accept(update)
    except Exception as exc:
        logger.error(f"Telegram webhook error: {exc}", exc_info=True)
    # Always 200 so Telegram does not keep retrying
    return _json(200, {"ok": True})


def _json(status: int, data: dict) -> Response:
    return Response(
        content=json.dumps(data),
        status_code=status,
        media_type="application/json; charset=utf-8",
    )
