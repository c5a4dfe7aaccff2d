"""First-turn intent detection.

``IntentClassifier`` asks the LLM to pick one tag from a fixed pt-BR
preamble; ``KeywordClassifier`` is the offline rule set.  Both return a
``Classification`` and never raise into the orchestrator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from loguru import logger

from amana.nl.parsers import fold
from amana.providers.base import LLMProvider, parse_json_object


class IntentTag(str, Enum):
    CREATE_EVENT = "CREATE_EVENT"
    READ_EMAILS = "READ_EMAILS"
    SEND_EMAIL = "SEND_EMAIL"
    SAVE_MEMORY = "SAVE_MEMORY"
    SHOW_AGENDA = "SHOW_AGENDA"
    NONE = "NONE"

    @classmethod
    def parse(cls, value: Any) -> IntentTag | None:
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class Classification:
    intent: IntentTag
    confidence: float = 0.0
    reply: str | None = None  # conversational answer when intent is NONE
    evidence: list[str] = field(default_factory=list)

    @property
    def is_none(self) -> bool:
        return self.intent is IntentTag.NONE


NONE = Classification(IntentTag.NONE, 0.0)


class Classifier(Protocol):
    async def classify(self, text: str) -> Classification: ...


CLASSIFIER_PREAMBLE = """\
Você é o Amana, assistente pessoal conectado ao Google (Agenda, Gmail, Drive e Planilhas).
Sua única tarefa é identificar a intenção da mensagem do usuário.

Intenções possíveis:
- CREATE_EVENT: criar/agendar/marcar uma reunião ou evento.
- READ_EMAILS: ler ou listar e-mails recebidos ("leia meu primeiro e-mail").
- SEND_EMAIL: enviar ou escrever um e-mail para alguém.
- SAVE_MEMORY: anotar, registrar ou salvar uma memória ("registre que o dia está bonito").
- SHOW_AGENDA: mostrar os próximos compromissos da agenda.
- NONE: conversa, pergunta geral ou pedido que não se encaixa acima.

Responda APENAS com um JSON válido, sem texto fora dele:
{"intent": "<uma das intenções>", "confidence": <número entre 0 e 1>, "reply": "<resposta curta e humana, só quando intent for NONE>"}
Nunca invente dados. Use português do Brasil.
"""


class IntentClassifier:
    """LLM-backed classifier with a confidence threshold."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str | None = None,
        threshold: float = 0.5,
        timeout: float = 30.0,
        temperature: float = 0.2,
    ) -> None:
        self.provider = provider
        self.model = model
        self.threshold = threshold
        self.timeout = timeout
        self.temperature = temperature

    async def classify(self, text: str) -> Classification:
        if not (text or "").strip():
            return NONE
        try:
            response = await self.provider.chat(
                [
                    {"role": "system", "content": CLASSIFIER_PREAMBLE},
                    {"role": "user", "content": text},
                ],
                model=self.model,
                max_tokens=200,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Intent classification failed: {e}")
            return NONE
        if response.failed:
            return NONE
        return self.interpret(response.content)

    def interpret(self, content: str | None) -> Classification:
        """Turn a raw model reply into a thresholded ``Classification``."""
        data = parse_json_object(content)
        if data is None:
            reply = (content or "").strip() or None
            logger.debug("Classifier reply was not JSON; treating as conversation")
            return Classification(IntentTag.NONE, 0.0, reply=reply)

        reply = data.get("reply")
        reply = str(reply).strip() if reply else None
        tag = IntentTag.parse(data.get("intent"))
        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(max(confidence, 0.0), 1.0)

        if tag is None or tag is IntentTag.NONE:
            return Classification(IntentTag.NONE, confidence if tag else 0.0, reply=reply)
        if confidence < self.threshold:
            logger.debug(f"Classifier {tag.value} below threshold ({confidence:.2f} < {self.threshold})")
            return Classification(IntentTag.NONE, confidence, reply=reply)
        return Classification(tag, confidence, reply=reply, evidence=["llm"])


# Ordered: viewing the agenda must win over creating an event, and sending
# over reading ("envie um e-mail" mentions e-mail too).
_KEYWORD_RULES: list[tuple[IntentTag, re.Pattern[str]]] = [
    (IntentTag.SEND_EMAIL, re.compile(
        r"\b(?:enviar|envie|envia|mande|mandar|manda|escreva|escrever|send|write)\b.*\b(?:e-?mails?|mails?)\b"
    )),
    (IntentTag.READ_EMAILS, re.compile(
        r"\b(?:ler|leia|le|mostre|mostrar|ver|veja|cheque|checar|read|check|show|quais)\b"
        r".*\b(?:e-?mails?|mails?|inbox|caixa\s+de\s+entrada)\b"
    )),
    (IntentTag.SAVE_MEMORY, re.compile(
        r"^(?:por\s+favor,?\s+)?(?:anot[ea]|registr[ea]|salv[ea]|guard[ea]|memoriz[ea]|remember|note)\b"
    )),
    (IntentTag.SHOW_AGENDA, re.compile(
        r"\b(?:mostre|mostrar|mostra|ver|veja|quais|listar|liste|show|what)\b"
        r".*\b(?:agenda|compromissos?|eventos?|reunioes|calendario|calendar|events)\b"
        r"|^\s*(?:minha\s+)?agenda\s*$|\bmy\s+(?:agenda|calendar)\b|\bproximos\s+compromissos\b"
    )),
    (IntentTag.CREATE_EVENT, re.compile(
        r"\b(?:agend(?:ar|e|a)|marc(?:ar|a)|marqu(?:e|em)|schedule|book)\b"
        r"|\b(?:reuniao|evento|meeting|event)\b"
    )),
    (IntentTag.SAVE_MEMORY, re.compile(
        r"\b(?:anot[ea]|registr[ea]|salv[ea]|salvar|guard[ea]|memoriz[ea]|remember|note)\b"
        r"|\bmemorias?\b|\bmemory\b"
    )),
]


class KeywordClassifier:
    """Deterministic rule-based classifier; no network access."""

    def __init__(self, confidence: float = 0.9) -> None:
        self.confidence = confidence

    async def classify(self, text: str) -> Classification:
        return self.classify_sync(text)

    def classify_sync(self, text: str) -> Classification:
        folded = fold(text).strip()
        if not folded:
            return NONE
        for tag, pattern in _KEYWORD_RULES:
            m = pattern.search(folded)
            if m:
                return Classification(tag, self.confidence, evidence=[m.group(0).strip()])
        return NONE
