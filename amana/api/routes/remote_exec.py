"""Remote command execution, guarded by ``AMANA_EXEC_KEY``."""

from __future__ import annotations

import hmac
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

router = APIRouter()


class ExecRequest(BaseModel):
    key: str = ""
    command: str
    data: dict[str, Any] = Field(default_factory=dict)


@router.post("/exec")
async def exec_command(body: ExecRequest, request: Request) -> dict[str, Any]:
    rt = request.app.state.runtime
    expected = rt.settings.exec_key
    if not expected:
        raise HTTPException(status_code=404, detail="exec endpoint disabled")
    if not hmac.compare_digest(body.key, expected):
        raise HTTPException(status_code=403, detail="invalid key")
    result = await rt.dispatcher.execute(body.command, body.data)
    return result.to_dict()
