"""Centralised settings for Amana, loaded from env / .env."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AmanaSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AMANA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- general ---
    app_name: str = "Amana"
    env: str = "dev"
    debug: bool = False
    log_level: str = "INFO"

    # --- HTTP ---
    host: str = "0.0.0.0"
    port: int = 10000

    # --- file-system paths ---
    state_dir: Path = Field(default_factory=lambda: Path.home() / ".amana")
    context_dir: Path | None = None  # defaults to <state_dir>/memory

    # --- dialog ---
    timezone: str = "America/Sao_Paulo"
    history_limit: int = 12
    confirm_intents: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["SEND_EMAIL"]
    )

    # --- idempotency guard ---
    idempotency_ttl_seconds: float = 300.0
    idempotency_max_entries: int = 10_000

    # --- intent classifier ---
    classifier_threshold: float = 0.5
    classifier_backend: str = "llm"  # llm | keywords

    # --- LLM (LiteLLM) ---
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str = ""
    llm_api_base: str = ""
    llm_timeout: float = 30.0
    llm_temperature: float = 0.2
    llm_extraction: bool = True  # LLM pass for free-text slots

    # --- voice (OpenAI audio endpoints) ---
    openai_api_key: str = ""
    openai_api_base: str = "https://api.openai.com/v1"
    stt_model: str = "whisper-1"
    stt_language: str = "pt"
    tts_model: str = "gpt-4o-mini-tts"
    tts_voice: str = "alloy"
    transcription_timeout: float = 60.0
    voice_replies: bool = True

    # --- Telegram ---
    telegram_token: str = ""
    telegram_webhook_url: str = ""
    telegram_webhook_secret: str = ""

    # --- Google (OAuth refresh-token flow) ---
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    sheets_spreadsheet_id: str = ""
    drive_folder_id: str = ""

    # --- action backend ---
    backend: str = "google"  # google | dry_run
    backend_timeout: float = 30.0

    # --- remote exec endpoint (disabled when empty) ---
    exec_key: str = ""

    # --- locks ---
    redis_url: str = ""  # optional: cross-instance conversation locks
    lock_timeout: float = 120.0

    @field_validator("confirm_intents", mode="before")
    @classmethod
    def _split_csv(cls, value: object) -> object:
        if isinstance(value, str):
            raw = value.strip()
            items = json.loads(raw) if raw.startswith("[") else raw.split(",")
            return [str(v).strip().upper() for v in items if str(v).strip()]
        return value

    @property
    def resolved_context_dir(self) -> Path:
        return self.context_dir or (self.state_dir / "memory")

    @property
    def audit_path(self) -> Path:
        return self.state_dir / "audit" / "actions.jsonl"


@lru_cache
def get_settings() -> AmanaSettings:
    s = AmanaSettings()
    s.state_dir.mkdir(parents=True, exist_ok=True)
    s.resolved_context_dir.mkdir(parents=True, exist_ok=True)
    return s
