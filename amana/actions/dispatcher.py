"""Uniform ``execute(command, data)`` façade over the productivity backends.

This is the only place that maps a ``Command`` to a backend coroutine.
Backend failures are classified here into the ``ErrorKind`` taxonomy and
returned as ``ActionResult`` records; nothing raises past ``execute``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx
from loguru import logger

from amana.actions.commands import REQUIRED_KEYS, Command
from amana.dialog.results import ActionResult, ErrorKind
from amana.observability.audit import ActionAudit


class BackendError(RuntimeError):
    """A backend failure that already knows its kind."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.BACKEND_PERMANENT,
        *,
        status_code: int | None = None,
        slot: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.slot = slot


def classify_status(status_code: int) -> ErrorKind:
    """HTTP status -> error kind (429/408/5xx transient, 400/422 input, rest permanent)."""
    if status_code in (408, 429) or status_code >= 500:
        return ErrorKind.BACKEND_TRANSIENT
    if status_code in (400, 422):
        return ErrorKind.INPUT_INVALID
    return ErrorKind.BACKEND_PERMANENT


class ProductivityBackend(Protocol):
    """Operations every backend provides; each returns a JSON-able payload."""

    async def create_event(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def read_emails(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def send_email(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def save_memory(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def show_agenda(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def save_file(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def close(self) -> None: ...


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list, dict)) and not value)


class ActionDispatcher:
    def __init__(
        self,
        backend: ProductivityBackend,
        *,
        audit: ActionAudit | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.backend = backend
        self.audit = audit
        self.timeout = timeout
        self._handlers: dict[Command, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            Command.CREATE_EVENT: backend.create_event,
            Command.READ_EMAILS: backend.read_emails,
            Command.SEND_EMAIL: backend.send_email,
            Command.SAVE_MEMORY: backend.save_memory,
            Command.SHOW_AGENDA: backend.show_agenda,
            Command.SAVE_FILE: backend.save_file,
        }

    async def execute(self, command: Command | str, data: dict[str, Any] | None = None) -> ActionResult:
        cmd = Command.parse(command)
        payload = dict(data or {})
        if cmd is None:
            logger.warning(f"Unknown command rejected: {command!r}")
            return ActionResult.failure(ErrorKind.BACKEND_PERMANENT, f"unknown command {command!r}")

        result = self._check(cmd, payload) or await self._call(cmd, payload)
        if result.ok:
            logger.info(f"{cmd.value} ok (id={result.id})")
        if self.audit is not None:
            await self.audit.record(cmd, payload, result)
        return result

    def _check(self, cmd: Command, data: dict[str, Any]) -> ActionResult | None:
        missing = [key for key in REQUIRED_KEYS[cmd] if _blank(data.get(key))]
        if missing:
            return ActionResult.failure(
                ErrorKind.INPUT_INVALID, f"missing {', '.join(missing)}", slot=missing[0],
            )
        if cmd is Command.SAVE_FILE and _blank(data.get("text")) and _blank(data.get("base64")):
            return ActionResult.failure(ErrorKind.INPUT_INVALID, "missing text or base64", slot="text")
        if cmd in (Command.READ_EMAILS, Command.SHOW_AGENDA):
            key = "max_results" if cmd is Command.READ_EMAILS else "max"
            if key in data:
                try:
                    value = int(data[key])
                except (TypeError, ValueError):
                    value = 0
                if not 1 <= value <= 10:
                    return ActionResult.failure(ErrorKind.INPUT_INVALID, f"{key} must be 1..10", slot=key)
        return None

    async def _call(self, cmd: Command, data: dict[str, Any]) -> ActionResult:
        try:
            payload = await asyncio.wait_for(self._handlers[cmd](data), timeout=self.timeout)
        except BackendError as e:
            logger.warning(f"{cmd.value} backend error ({e.kind.value}): {e}")
            return ActionResult.failure(e.kind, str(e), slot=e.slot)
        except (TimeoutError, httpx.TimeoutException):
            logger.warning(f"{cmd.value} timed out after {self.timeout}s")
            return ActionResult.failure(ErrorKind.BACKEND_TRANSIENT, "timeout")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            kind = classify_status(status)
            logger.warning(f"{cmd.value} HTTP {status} ({kind.value})")
            return ActionResult.failure(kind, f"HTTP {status}")
        except httpx.TransportError as e:
            logger.warning(f"{cmd.value} transport error: {e}")
            return ActionResult.failure(ErrorKind.BACKEND_TRANSIENT, "network error")
        except Exception as e:
            logger.error(f"{cmd.value} failed unexpectedly: {e}")
            return ActionResult.failure(ErrorKind.BACKEND_PERMANENT, str(e))

        payload = payload or {}
        return ActionResult.success(id=payload.get("id"), payload=payload)

    async def close(self) -> None:
        await self.backend.close()
