"""Telegram channel (webhook mode) using python-telegram-bot's ``Bot``."""

from __future__ import annotations

import re
import uuid
from pathlib import Path
from typing import Any

from loguru import logger
from telegram import Bot
from telegram.request import HTTPXRequest

from amana.bus.events import InboundMessage, OutboundMessage

TELEGRAM_TEXT_LIMIT = 4096


def _split_for_limit(text: str, limit: int = TELEGRAM_TEXT_LIMIT) -> list[str]:
    """Split a reply on paragraph boundaries so each chunk fits one message."""
    stripped = text.strip()
    if not stripped:
        return []
    if len(stripped) <= limit:
        return [stripped]

    chunks: list[str] = []
    current = ""
    for paragraph in re.split(r"\n{2,}", stripped):
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) <= limit:
            current = candidate
            continue
        if current:
            chunks.append(current)
        while len(paragraph) > limit:
            chunks.append(paragraph[:limit])
            paragraph = paragraph[limit:]
        current = paragraph
    if current:
        chunks.append(current)
    return chunks


def markdown_to_telegram_html(text: str) -> str:
    """
    Convert light markdown to Telegram-safe HTML (``&``, ``<``, ``>`` escaped).
    """
    if not text:
        return ""

    # 1. Extract and protect inline code
    inline_codes: list[str] = []

    def save_inline_code(m: re.Match) -> str:
        inline_codes.append(m.group(1))
        return f"\x00IC{len(inline_codes) - 1}\x00"

    text = re.sub(r"`([^`]+)`", save_inline_code, text)

    # 2. Escape HTML special characters
    text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")

    # 3. Links [text](url)
    text = re.sub(r"\[([^\]]+)\]\(([^)\s]+)\)", r'<a href="\2">\1</a>', text)

    # 4. Bold **text**, then *text* (single-asterisk bold is common in pt-BR chat)
    text = re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", text)
    text = re.sub(r"(?<![\w*])\*([^*\n]+)\*(?![\w*])", r"<b>\1</b>", text)

    # 5. Italic _text_ (avoid matching inside words like some_var_name)
    text = re.sub(r"(?<![a-zA-Z0-9])_([^_\n]+)_(?![a-zA-Z0-9])", r"<i>\1</i>", text)

    # 6. Strikethrough ~~text~~
    text = re.sub(r"~~(.+?)~~", r"<s>\1</s>", text)

    # 7. Bullet lists - item -> • item
    text = re.sub(r"^[-*]\s+", "• ", text, flags=re.MULTILINE)

    # 8. Restore inline code with HTML tags
    for i, code in enumerate(inline_codes):
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        text = text.replace(f"\x00IC{i}\x00", f"<code>{escaped}</code>")

    return text


class TelegramChannel:
    """
    Telegram channel fed by the webhook route.

    Parses raw ``Update`` JSON into ``InboundMessage`` and sends replies
    (HTML with a plain-text fallback, plus optional voice notes).
    """

    name = "telegram"

    def __init__(self, token: str, *, media_dir: Path, bot: Bot | None = None):
        if bot is None:
            req = HTTPXRequest(connection_pool_size=16, pool_timeout=5.0, connect_timeout=30.0, read_timeout=30.0)
            bot = Bot(token=token, request=req)
        self.bot = bot
        self.media_dir = media_dir
        self.media_dir.mkdir(parents=True, exist_ok=True)

    async def start(self) -> None:
        await self.bot.initialize()

    async def stop(self) -> None:
        await self.bot.shutdown()

    # ── inbound ──────────────────────────────────────────────────────────

    def parse_update(self, update: dict[str, Any]) -> InboundMessage | None:
        """Update JSON -> InboundMessage; None for updates we do not handle."""
        if not isinstance(update, dict) or "update_id" not in update:
            return None
        # Edited messages are not new utterances.
        message = update.get("message")
        if not isinstance(message, dict):
            return None
        chat = message.get("chat") or {}
        if "id" not in chat:
            return None

        voice = message.get("voice") or message.get("audio") or {}
        text = message.get("text") or message.get("caption") or ""
        if not text and not voice.get("file_id"):
            return None

        sender = message.get("from") or {}
        return InboundMessage(
            channel=self.name,
            conversation_id=str(chat["id"]),
            delivery_id=str(update["update_id"]),
            text=text,
            voice_file_id=voice.get("file_id"),
            metadata={
                "message_id": message.get("message_id"),
                "user_id": sender.get("id"),
                "username": sender.get("username"),
                "first_name": sender.get("first_name"),
                "is_group": chat.get("type") != "private",
            },
        )

    async def download_voice(self, file_id: str) -> Path:
        file = await self.bot.get_file(file_id)
        path = self.media_dir / f"voice_{uuid.uuid4().hex}.ogg"
        await file.download_to_drive(str(path))
        logger.debug(f"Downloaded voice to {path}")
        return path

    # ── outbound ─────────────────────────────────────────────────────────

    async def send(self, msg: OutboundMessage) -> None:
        """Send a text reply; errors are logged, never raised."""
        try:
            chat_id = int(msg.conversation_id)
        except ValueError:
            logger.error(f"Invalid chat_id: {msg.conversation_id}")
            return
        for chunk in _split_for_limit(msg.text):
            await self._send_single(chat_id, chunk)

    async def _send_single(self, chat_id: int, text: str) -> None:
        """Send one text chunk to Telegram, with HTML fallback."""
        try:
            html = markdown_to_telegram_html(text)
            await self.bot.send_message(chat_id=chat_id, text=html, parse_mode="HTML")
        except Exception as e:
            logger.warning(f"HTML parse failed, falling back to plain text: {e}")
            try:
                await self.bot.send_message(chat_id=chat_id, text=text)
            except Exception as e2:
                logger.error(f"Error sending Telegram message: {e2}")

    async def send_voice(self, conversation_id: str, audio_path: Path) -> None:
        try:
            with audio_path.open("rb") as audio:
                await self.bot.send_voice(chat_id=int(conversation_id), voice=audio)
        except Exception as e:
            logger.error(f"Error sending Telegram voice: {e}")

    async def send_typing(self, conversation_id: str) -> None:
        try:
            await self.bot.send_chat_action(chat_id=int(conversation_id), action="typing")
        except Exception as e:
            logger.debug(f"Typing indicator failed for {conversation_id}: {e}")

    async def set_webhook(self, url: str, secret: str = "") -> bool:
        return await self.bot.set_webhook(
            url=url,
            secret_token=secret or None,
            allowed_updates=["message"],
        )
