"""Conversation record persisted between webhook invocations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

HISTORY_LIMIT = 12
HISTORY_TEXT_LIMIT = 500

ROLE_USER = "user"
ROLE_BOT = "bot"


def _utcnow_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class Conversation:
    """Durable per-conversation state: task slots plus bounded history.

    ``intent is None`` means idle; in that case ``fields`` is empty and
    ``stage`` is ``None``.
    """

    conversation_id: str
    intent: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    stage: str | None = None
    history: list[dict[str, str]] = field(default_factory=list)
    last_update: str = field(default_factory=_utcnow_iso)

    @property
    def is_idle(self) -> bool:
        return self.intent is None

    def normalize(self) -> Conversation:
        """Re-establish the idle invariant and the history bound in place."""
        if self.intent is None:
            self.fields = {}
            self.stage = None
        self.history = limit_history(self.history)
        return self

    def add_history(self, role: str, text: str, at: str | None = None) -> None:
        self.history.append({
            "role": role,
            "text": str(text or "")[:HISTORY_TEXT_LIMIT],
            "at": at or _utcnow_iso(),
        })
        self.history = limit_history(self.history)

    def begin_task(self, intent: str, initial_fields: dict[str, Any] | None = None) -> None:
        self.intent = intent
        self.fields = dict(initial_fields or {})
        self.stage = None

    def end_task(self) -> None:
        """Back to idle; history is kept."""
        self.intent = None
        self.fields = {}
        self.stage = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "intent": self.intent,
            "fields": self.fields,
            "stage": self.stage,
            "history": self.history,
            "last_update": self.last_update,
        }

    @classmethod
    def from_dict(cls, conversation_id: str, data: dict[str, Any]) -> Conversation:
        # Older files nest the task state under "context".
        ctx = data.get("context") if isinstance(data.get("context"), dict) else data
        conv = cls(
            conversation_id=str(data.get("conversation_id") or conversation_id),
            intent=ctx.get("intent") or None,
            fields=dict(ctx.get("fields") or {}),
            stage=ctx.get("stage") or None,
            history=[h for h in ctx.get("history") or [] if isinstance(h, dict)],
            last_update=str(data.get("last_update") or data.get("lastUpdate") or _utcnow_iso()),
        )
        return conv.normalize()


def limit_history(history: list[dict[str, str]], limit: int = HISTORY_LIMIT) -> list[dict[str, str]]:
    """Keep only the newest *limit* entries."""
    if len(history) <= limit:
        return list(history)
    return list(history[-limit:])


def deep_merge(base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *update* into a copy of *base*; lists are replaced."""
    merged = dict(base)
    for key, value in update.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged
