"""In-memory backend that records commands instead of calling Google."""

from __future__ import annotations

import uuid
from typing import Any

from loguru import logger


class DryRunBackend:
    """Accepts every command and remembers it; useful offline and in tests."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._events: list[dict[str, Any]] = []

    def _record(self, name: str, data: dict[str, Any]) -> str:
        self.calls.append((name, dict(data)))
        logger.info(f"[dry-run] {name}: {data}")
        return f"dry-{uuid.uuid4().hex[:8]}"

    async def create_event(self, data: dict[str, Any]) -> dict[str, Any]:
        event_id = self._record("CREATE_EVENT", data)
        self._events.append({"id": event_id, "summary": data["summary"], "start": data["start"], "end": data["end"]})
        self._events.sort(key=lambda ev: ev["start"])
        return {"id": event_id, "summary": data["summary"], "start": data["start"], "end": data["end"]}

    async def show_agenda(self, data: dict[str, Any]) -> dict[str, Any]:
        self._record("SHOW_AGENDA", data)
        events = self._events[: int(data.get("max", 5))]
        return {"events": events, "total": len(events)}

    async def read_emails(self, data: dict[str, Any]) -> dict[str, Any]:
        self._record("READ_EMAILS", data)
        return {"messages": [], "total": 0}

    async def send_email(self, data: dict[str, Any]) -> dict[str, Any]:
        to = data["to"] if isinstance(data["to"], list) else [data["to"]]
        return {"id": self._record("SEND_EMAIL", data), "to": to}

    async def save_memory(self, data: dict[str, Any]) -> dict[str, Any]:
        return {"id": self._record("SAVE_MEMORY", data), "title": data["title"]}

    async def save_file(self, data: dict[str, Any]) -> dict[str, Any]:
        return {"id": self._record("SAVE_FILE", data), "name": data["name"]}

    async def close(self) -> None:
        return None
