"""Voice notes: OpenAI speech synthesis for replies, Whisper for incoming audio."""

import re
import time
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

# ── defaults ──
DEFAULT_TTS_MODEL = "gpt-4o-mini-tts"
DEFAULT_TTS_VOICE = "alloy"
DEFAULT_TTS_FORMAT = "opus"  # Telegram voice notes are OGG/Opus
DEFAULT_STT_MODEL = "whisper-1"
DEFAULT_API_BASE = "https://api.openai.com/v1"

# A voice note longer than this is worse than reading the text.
TTS_MAX_TEXT_LENGTH = 2000

# ── spoken-text cleanup ──
# Applied in order; each pair is (pattern, replacement).
_SPOKEN_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)"), r"\1"),
    (re.compile(r"(?<!\w)_(.+?)_(?!\w)"), r"\1"),
    (re.compile(r"~~(.+?)~~"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"^(\s*)[-*+•]\s", re.MULTILINE), r"\1"),
    # "10:00–11:00" reads as "10:00 às 11:00"
    (re.compile(r"(\d{1,2}:\d{2})\s*[–-]\s*(\d{1,2}:\d{2})"), r"\1 às \2"),
    # pictographs are read aloud by name ("calendário espiral")
    (re.compile("[\U0001F300-\U0001FAFF☀-➿️]"), ""),
    (re.compile(r"[ \t]{2,}"), " "),
    (re.compile(r"\n{3,}"), "\n\n"),
]


def strip_markdown_for_tts(text: str) -> str:
    """Turn a markdown reply into plain text fit for speech."""
    for pattern, replacement in _SPOKEN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


class SpeechError(RuntimeError):
    """Synthesis could not produce audio."""


class OpenAIVoiceProvider:
    """Speech in both directions through OpenAI's audio endpoints.

    ``tts`` writes an opus file under ``voice_dir`` (the caller deletes it
    after sending). ``stt`` never raises: an empty transcript means the audio
    could not be understood.
    """

    def __init__(
        self,
        api_key: str = "",
        api_base: str | None = None,
        *,
        voice_dir: Path,
        tts_model: str = DEFAULT_TTS_MODEL,
        tts_voice: str = DEFAULT_TTS_VOICE,
        stt_model: str = DEFAULT_STT_MODEL,
        stt_timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.api_base = (api_base or DEFAULT_API_BASE).rstrip("/")
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.stt_model = stt_model
        self.stt_timeout = stt_timeout
        self.voice_dir = voice_dir
        self.voice_dir.mkdir(parents=True, exist_ok=True)
        self._client = client or httpx.AsyncClient()

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, endpoint: str, timeout: float, **kwargs: Any) -> httpx.Response:
        response = await self._client.post(
            f"{self.api_base}/{endpoint}",
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=timeout,
            **kwargs,
        )
        response.raise_for_status()
        return response

    # ── text → voice note ──

    async def tts(self, text: str, *, response_format: str = DEFAULT_TTS_FORMAT) -> Path:
        """Synthesize *text*; returns the audio file path.

        Raises:
            SpeechError: no key, nothing speakable, or the request failed.
        """
        if not self.available:
            raise SpeechError("OpenAI API key not configured for TTS")
        spoken = strip_markdown_for_tts(text)[:TTS_MAX_TEXT_LENGTH]
        if not spoken:
            raise SpeechError("nothing to synthesize")

        try:
            response = await self._post(
                "audio/speech",
                60.0,
                json={
                    "model": self.tts_model,
                    "input": spoken,
                    "voice": self.tts_voice,
                    "response_format": response_format,
                },
            )
        except httpx.HTTPError as e:
            raise SpeechError(f"TTS request failed: {e}") from e

        path = self.voice_dir / f"reply_{time.time_ns()}.{response_format}"
        path.write_bytes(response.content)
        logger.debug(f"TTS: {len(spoken)} chars -> {path.name} ({len(response.content)} bytes)")
        return path

    # ── voice note → text ──

    async def stt(self, audio_path: str | Path, *, language: str | None = None) -> str:
        """Transcribe *audio_path*; "" when that is not possible."""
        if not self.available:
            logger.warning("OpenAI API key not configured for STT")
            return ""
        path = Path(audio_path)
        if not path.exists():
            logger.error(f"Audio file not found: {path}")
            return ""

        form = {"model": self.stt_model}
        if language:
            form["language"] = language
        try:
            response = await self._post(
                "audio/transcriptions",
                self.stt_timeout,
                files={"file": (path.name, path.read_bytes())},
                data=form,
            )
            text = str(response.json().get("text", "")).strip()
        except (httpx.HTTPError, ValueError, OSError) as e:
            logger.error(f"STT transcription error: {e}")
            return ""
        logger.debug(f"STT: {path.name} -> {len(text)} chars")
        return text
