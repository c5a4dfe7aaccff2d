"""Append-only audit log of dispatched actions (one JSON line each)."""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from amana.actions.commands import Command
from amana.dialog.results import ActionResult
from amana.utils.atomic_io import AtomicFileWriter

# Every other string is logged as its length only.
_CLEAR_KEYS = frozenset({"start", "end", "time_zone"})


def _redact(data: dict[str, Any]) -> dict[str, Any]:
    """Keep message content, addresses and file blobs out of the log."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            out[key] = _redact(value)
        elif isinstance(value, (list, tuple)):
            out[key] = f"<{len(value)} items>"
        elif isinstance(value, str) and key not in _CLEAR_KEYS:
            out[key] = f"<{len(value)} chars>"
        else:
            out[key] = value
    return out


class ActionAudit:
    def __init__(self, path: Path, writer: AtomicFileWriter | None = None) -> None:
        self.path = path
        self._writer = writer or AtomicFileWriter()

    async def record(self, command: Command, data: dict[str, Any], result: ActionResult) -> dict[str, Any]:
        data = _redact(data)
        outcome = result.to_dict()
        digest = hashlib.sha256(
            json.dumps(
                {"command": command.value, "data": data, "result": outcome},
                sort_keys=True, ensure_ascii=False, default=str,
            ).encode("utf-8")
        ).hexdigest()
        entry = {
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "command": command.value,
            "data": data,
            "ok": result.ok,
            "id": result.id,
            "error_kind": result.error.kind.value if result.error else None,
            "hash": digest,
        }
        await self._writer.append_json_line(self.path, entry)
        return entry

    def tail(self, limit: int = 20) -> list[dict[str, Any]]:
        """Newest *limit* entries; unreadable lines are skipped."""
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        entries = []
        for line in lines[-limit:]:
            try:
                entries.append(json.loads(line))
            except ValueError:
                continue
        return entries
