"""Messaging shell: one webhook delivery -> one dialog cycle -> reply.

``accept`` runs synchronously inside the webhook request (parse + dedup)
and schedules the rest as a background task, so the platform is answered
before any slow LLM, backend or speech call starts.  Cycles of one
conversation run in arrival order: each waits for the previous one, voice
download and transcription included.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from amana.bus.events import InboundMessage, OutboundMessage
from amana.dialog import replies
from amana.providers.voice import OpenAIVoiceProvider
from amana.runtime.idempotency import DeliveryGuard


class ChatChannel(Protocol):
    name: str

    def parse_update(self, update: dict[str, Any]) -> InboundMessage | None: ...
    async def download_voice(self, file_id: str) -> Path: ...
    async def send(self, msg: OutboundMessage) -> None: ...
    async def send_voice(self, conversation_id: str, audio_path: Path) -> None: ...
    async def send_typing(self, conversation_id: str) -> None: ...


class DialogHandler(Protocol):
    async def handle(self, conversation_id: str, text: str) -> str: ...


class MessagingShell:
    def __init__(
        self,
        channel: ChatChannel,
        orchestrator: DialogHandler,
        guard: DeliveryGuard,
        *,
        voice: OpenAIVoiceProvider | None = None,
        voice_replies: bool = True,
        stt_language: str = "pt",
    ) -> None:
        self.channel = channel
        self.orchestrator = orchestrator
        self.guard = guard
        self.voice = voice
        self.voice_replies = voice_replies
        self.stt_language = stt_language
        self._tasks: set[asyncio.Task] = set()
        self._last: dict[str, asyncio.Task] = {}

    def accept(self, update: dict[str, Any]) -> bool:
        """Parse and dedup *update*; schedule its cycle. True if scheduled."""
        inbound = self.channel.parse_update(update)
        if inbound is None:
            logger.debug(f"Ignoring unsupported update {update.get('update_id') if isinstance(update, dict) else '?'}")
            return False
        if self.guard.seen(inbound.delivery_id):
            return False
        cid = inbound.conversation_id
        task = asyncio.create_task(self._after(self._last.get(cid), inbound))
        self._last[cid] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda t: self._forget(cid, t))
        return True

    def _forget(self, cid: str, task: asyncio.Task) -> None:
        if self._last.get(cid) is task:
            del self._last[cid]

    async def _after(self, previous: asyncio.Task | None, inbound: InboundMessage) -> OutboundMessage | None:
        if previous is not None:
            await asyncio.wait({previous})
        return await self.process(inbound)

    async def drain(self) -> None:
        """Wait for in-flight cycles (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def process(self, inbound: InboundMessage) -> OutboundMessage | None:
        """TRANSCRIBE? -> ORCHESTRATE -> SEND_TEXT -> (SYNTHESIZE + SEND_VOICE)?"""
        cid = inbound.conversation_id
        try:
            await self.channel.send_typing(cid)
            text = inbound.text
            if inbound.is_voice:
                text = await self._transcribe(inbound)
                if not text:
                    out = OutboundMessage(self.channel.name, cid, replies.AUDIO_NOT_UNDERSTOOD)
                    await self.channel.send(out)
                    return out
                logger.info(f"Transcribed voice from {cid}: {text[:50]}...")

            reply = await self.orchestrator.handle(cid, text)
            out = OutboundMessage(
                self.channel.name, cid, reply,
                voice=inbound.is_voice and self.voice_replies and bool(self.voice and self.voice.available),
                reply_to=str(inbound.metadata.get("message_id") or "") or None,
            )
            await self.channel.send(out)
            if out.voice:
                await self._send_voice(out)
            return out
        except Exception as e:
            logger.error(f"Messaging cycle failed for {cid}: {e}")
            return None

    async def _transcribe(self, inbound: InboundMessage) -> str:
        if self.voice is None or not self.voice.available:
            logger.warning("Voice message received but STT is not configured")
            return ""
        path: Path | None = None
        try:
            path = await self.channel.download_voice(inbound.voice_file_id)
            return await self.voice.stt(path, language=self.stt_language)
        except Exception as e:
            logger.error(f"Voice download/transcription failed: {e}")
            return ""
        finally:
            if path is not None:
                path.unlink(missing_ok=True)

    async def _send_voice(self, out: OutboundMessage) -> None:
        try:
            audio = await self.voice.tts(out.text)
        except Exception as e:
            logger.warning(f"TTS failed; text reply only: {e}")
            return
        try:
            await self.channel.send_voice(out.conversation_id, audio)
        finally:
            audio.unlink(missing_ok=True)
