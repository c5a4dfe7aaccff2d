"""Build the object graph shared by the HTTP app and the CLI."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from amana.actions.dispatcher import ActionDispatcher, ProductivityBackend
from amana.actions.dry_run import DryRunBackend
from amana.actions.google import GoogleCredentials, GoogleWorkspaceBackend
from amana.channels.shell import MessagingShell
from amana.channels.telegram import TelegramChannel
from amana.dialog.orchestrator import Orchestrator
from amana.flows.intents import build_default_registry
from amana.nl.extractor import EntityExtractor
from amana.nl.intent_engine import Classifier, IntentClassifier, KeywordClassifier
from amana.observability.audit import ActionAudit
from amana.providers.litellm_provider import LiteLLMProvider
from amana.providers.voice import OpenAIVoiceProvider
from amana.runtime.conversation_lock import ConversationLock
from amana.runtime.idempotency import DeliveryGuard
from amana.session.context_store import ContextStore
from amana.settings import AmanaSettings


@dataclass
class Runtime:
    settings: AmanaSettings
    store: ContextStore
    orchestrator: Orchestrator
    dispatcher: ActionDispatcher
    audit: ActionAudit
    guard: DeliveryGuard
    voice: OpenAIVoiceProvider | None = None
    channel: TelegramChannel | None = None
    shell: MessagingShell | None = None

    async def start(self) -> None:
        if self.channel is not None:
            await self.channel.start()

    async def aclose(self) -> None:
        if self.shell is not None:
            await self.shell.drain()
        if self.channel is not None:
            try:
                await self.channel.stop()
            except Exception as e:
                logger.warning(f"Telegram shutdown failed: {e}")
        if self.voice is not None:
            await self.voice.aclose()
        await self.dispatcher.close()


def build_backend(settings: AmanaSettings) -> ProductivityBackend:
    if settings.backend == "dry_run":
        logger.info("Action backend: dry_run (nothing leaves this process)")
        return DryRunBackend()
    creds = GoogleCredentials(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        refresh_token=settings.google_refresh_token,
    )
    if not creds.complete:
        logger.warning("Google OAuth credentials incomplete; every action will fail permanently")
    return GoogleWorkspaceBackend(
        creds,
        time_zone=settings.timezone,
        spreadsheet_id=settings.sheets_spreadsheet_id,
        drive_folder_id=settings.drive_folder_id,
        timeout=settings.backend_timeout,
    )


def build_provider(settings: AmanaSettings) -> LiteLLMProvider:
    return LiteLLMProvider(
        api_key=settings.llm_api_key or None,
        api_base=settings.llm_api_base or None,
        default_model=settings.llm_model,
        default_timeout=settings.llm_timeout,
    )


def build_dispatcher(settings: AmanaSettings) -> tuple[ActionDispatcher, ActionAudit]:
    audit = ActionAudit(settings.audit_path)
    dispatcher = ActionDispatcher(build_backend(settings), audit=audit, timeout=settings.backend_timeout)
    return dispatcher, audit


def build_store(settings: AmanaSettings) -> ContextStore:
    redis = None
    if settings.redis_url:
        from redis.asyncio import from_url

        redis = from_url(settings.redis_url)
        logger.info("Conversation locks are shared through Redis")
    return ContextStore(
        settings.resolved_context_dir,
        lock=ConversationLock(redis, ttl_seconds=int(settings.lock_timeout) + 60),
        history_limit=settings.history_limit,
        lock_timeout=settings.lock_timeout,
    )


def build_runtime(settings: AmanaSettings, *, with_channel: bool = True) -> Runtime:
    """Assemble store, NL, flows, dispatcher and (optionally) the Telegram shell."""
    store = build_store(settings)

    provider = build_provider(settings) if settings.classifier_backend == "llm" or settings.llm_extraction else None
    classifier: Classifier
    if settings.classifier_backend == "keywords" or provider is None:
        classifier = KeywordClassifier()
    else:
        classifier = IntentClassifier(
            provider,
            model=settings.llm_model,
            threshold=settings.classifier_threshold,
            timeout=settings.llm_timeout,
            temperature=settings.llm_temperature,
        )
    extractor = EntityExtractor(
        settings.timezone,
        llm=provider if settings.llm_extraction else None,
        model=settings.llm_model,
        timeout=settings.llm_timeout,
    )
    registry = build_default_registry(settings.timezone, settings.confirm_intents)
    dispatcher, audit = build_dispatcher(settings)
    orchestrator = Orchestrator(store, classifier, extractor, registry, dispatcher)
    guard = DeliveryGuard(settings.idempotency_ttl_seconds, settings.idempotency_max_entries)

    runtime = Runtime(
        settings=settings,
        store=store,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        audit=audit,
        guard=guard,
    )
    if settings.openai_api_key:
        runtime.voice = OpenAIVoiceProvider(
            settings.openai_api_key,
            settings.openai_api_base,
            voice_dir=settings.state_dir / "voice",
            tts_model=settings.tts_model,
            tts_voice=settings.tts_voice,
            stt_model=settings.stt_model,
            stt_timeout=settings.transcription_timeout,
        )
    if with_channel and settings.telegram_token:
        runtime.channel = TelegramChannel(settings.telegram_token, media_dir=settings.state_dir / "media")
        runtime.shell = MessagingShell(
            runtime.channel,
            orchestrator,
            guard,
            voice=runtime.voice,
            voice_replies=settings.voice_replies,
            stt_language=settings.stt_language,
        )
    elif with_channel:
        logger.warning("AMANA_TELEGRAM_TOKEN not set; webhook deliveries will be ignored")
    return runtime
