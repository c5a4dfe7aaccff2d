from typing import Any

import pytest

from amana.nl.intent_engine import IntentClassifier, IntentTag, KeywordClassifier
from amana.providers.base import LLMProvider, LLMResponse


class ScriptedProvider(LLMProvider):
    def __init__(self, content: str | None, finish_reason: str = "stop") -> None:
        super().__init__()
        self.content = content
        self.finish_reason = finish_reason
        self.calls: list[list[dict[str, Any]]] = []

    async def chat(self, messages, model=None, max_tokens=512, temperature=0.2, timeout=None) -> LLMResponse:
        self.calls.append(messages)
        return LLMResponse(content=self.content, finish_reason=self.finish_reason)

    def get_default_model(self) -> str:
        return "scripted"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("agende uma reunião", IntentTag.CREATE_EVENT),
        ("Marque um evento amanhã às 10h", IntentTag.CREATE_EVENT),
        ("leia meus dois últimos emails", IntentTag.READ_EMAILS),
        ("Envie um e-mail para ana@example.com", IntentTag.SEND_EMAIL),
        ("Registre que o dia está bonito", IntentTag.SAVE_MEMORY),
        ("mostre minha agenda", IntentTag.SHOW_AGENDA),
        ("quais são meus próximos compromissos?", IntentTag.SHOW_AGENDA),
        ("bom dia!", IntentTag.NONE),
        ("", IntentTag.NONE),
    ],
)
def test_keyword_classifier(text: str, expected: IntentTag) -> None:
    assert KeywordClassifier().classify_sync(text).intent is expected


@pytest.mark.asyncio
async def test_llm_classifier_accepts_confident_tag() -> None:
    provider = ScriptedProvider('Claro! {"intent": "create_event", "confidence": 0.92}')
    result = await IntentClassifier(provider).classify("marca uma call amanhã")
    assert result.intent is IntentTag.CREATE_EVENT
    assert result.confidence == pytest.approx(0.92)
    assert provider.calls[0][0]["role"] == "system"
    assert provider.calls[0][1] == {"role": "user", "content": "marca uma call amanhã"}


@pytest.mark.asyncio
async def test_llm_classifier_threshold_falls_back_to_none() -> None:
    provider = ScriptedProvider('{"intent": "SEND_EMAIL", "confidence": 0.3, "reply": "Pode explicar melhor?"}')
    result = await IntentClassifier(provider, threshold=0.5).classify("hmm, e-mail?")
    assert result.is_none
    assert result.reply == "Pode explicar melhor?"


@pytest.mark.asyncio
async def test_llm_classifier_non_json_reply_is_conversation() -> None:
    result = await IntentClassifier(ScriptedProvider("Oi! Tudo bem?")).classify("oi")
    assert result.is_none
    assert result.confidence == 0.0
    assert result.reply == "Oi! Tudo bem?"


@pytest.mark.asyncio
async def test_llm_classifier_failure_and_unknown_tag() -> None:
    failed = await IntentClassifier(ScriptedProvider(None, finish_reason="error")).classify("oi")
    assert failed.is_none and failed.reply is None
    unknown = await IntentClassifier(ScriptedProvider('{"intent": "BOOK_FLIGHT", "confidence": 1}')).classify("voo")
    assert unknown.is_none
    assert unknown.confidence == 0.0
