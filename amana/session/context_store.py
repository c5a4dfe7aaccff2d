"""File-backed context store: one JSON document per conversation.

The store is the single source of truth between webhook invocations.
Writes are atomic (temp + fsync + rename) so a crash never leaves a
half-written conversation behind; ``lock()`` serializes whole handle cycles
for one conversation.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from amana.runtime.conversation_lock import ConversationLock
from amana.session.conversation import Conversation, deep_merge, limit_history
from amana.utils.atomic_io import AtomicFileWriter, AtomicWriteError
from amana.utils.helpers import ensure_dir, safe_filename

_UNSET: Any = object()


class StoreError(RuntimeError):
    """The context store cannot be read or written."""


class ContextStore:
    """Durable per-conversation state keyed by ``conversation_id``."""

    def __init__(
        self,
        base_dir: Path,
        *,
        lock: ConversationLock | None = None,
        writer: AtomicFileWriter | None = None,
        history_limit: int = 12,
        lock_timeout: float = 120.0,
    ) -> None:
        self.base_dir = ensure_dir(base_dir)
        self._lock = lock or ConversationLock()
        self._writer = writer or AtomicFileWriter()
        self._history_limit = history_limit
        self._lock_timeout = lock_timeout

    def path_for(self, conversation_id: str) -> Path:
        return self.base_dir / f"{safe_filename(conversation_id)}.json"

    @asynccontextmanager
    async def lock(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the exclusive lock for *conversation_id* for a whole cycle."""
        async with self._lock.acquire(str(conversation_id), timeout=self._lock_timeout):
            yield

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    async def load(self, conversation_id: str) -> Conversation:
        """Load a conversation, or the idle default when none is stored."""
        cid = str(conversation_id)
        path = self.path_for(cid)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Conversation(conversation_id=cid)
        except OSError as exc:
            raise StoreError(f"cannot read conversation {cid}: {exc}") from exc

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("conversation document is not an object")
        except ValueError as exc:
            quarantine = path.with_name(path.name + ".corrupt")
            logger.error(f"Corrupt conversation file {path} ({exc}); moved to {quarantine.name}")
            try:
                path.replace(quarantine)
            except OSError as move_exc:
                raise StoreError(f"cannot quarantine {path}: {move_exc}") from move_exc
            return Conversation(conversation_id=cid)

        conv = Conversation.from_dict(cid, data)
        conv.history = limit_history(conv.history, self._history_limit)
        return conv

    async def save(self, conversation_id: str, conv: Conversation) -> Conversation:
        """Atomically overwrite the stored conversation."""
        conv.conversation_id = str(conversation_id)
        conv.normalize()
        conv.history = limit_history(conv.history, self._history_limit)
        conv.last_update = datetime.now(tz=UTC).isoformat()
        try:
            await self._writer.write_json(self.path_for(conv.conversation_id), conv.to_dict())
        except AtomicWriteError as exc:
            raise StoreError(str(exc)) from exc
        return conv

    async def reset(self, conversation_id: str) -> bool:
        """Delete a stored conversation. Returns True if a file was removed."""
        path = self.path_for(str(conversation_id))
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StoreError(f"cannot delete {path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Dialog-state helpers
    # ------------------------------------------------------------------

    async def update(
        self,
        conversation_id: str,
        *,
        intent: str | None = _UNSET,
        stage: str | None = _UNSET,
        fields: dict[str, Any] | None = None,
    ) -> Conversation:
        """Deep-merge *fields*; override *intent* / *stage* when given."""
        conv = await self.load(conversation_id)
        if intent is not _UNSET:
            conv.intent = intent
        if stage is not _UNSET:
            conv.stage = stage
        if fields:
            conv.fields = deep_merge(conv.fields, fields)
        return await self.save(conversation_id, conv)

    async def push_history(self, conversation_id: str, role: str, text: str) -> Conversation:
        conv = await self.load(conversation_id)
        conv.add_history(role, text)
        return await self.save(conversation_id, conv)

    async def begin_task(
        self,
        conversation_id: str,
        intent: str,
        initial_fields: dict[str, Any] | None = None,
    ) -> Conversation:
        conv = await self.load(conversation_id)
        conv.begin_task(intent, initial_fields)
        logger.debug(f"Task begun for {conversation_id}: {intent}")
        return await self.save(conversation_id, conv)

    async def end_task(self, conversation_id: str) -> Conversation:
        """Return to idle while keeping history."""
        conv = await self.load(conversation_id)
        if conv.intent is not None:
            logger.debug(f"Task ended for {conversation_id}: {conv.intent}")
        conv.end_task()
        return await self.save(conversation_id, conv)

    def list_ids(self) -> list[str]:
        return sorted(p.stem for p in self.base_dir.glob("*.json"))
