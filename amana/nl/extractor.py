"""Schema-guided slot extraction.

Deterministic parsers run first and always win; an optional LLM pass only
fills free-text slots the parsers cannot reach (e.g. an e-mail subject
phrased without a cue word).  Values are coerced through the slot specs, so
anything returned in ``fields`` already has its stored form.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from loguru import logger

from amana.flows.registry import IntentSchema, SlotSpec, SlotType
from amana.nl import parsers
from amana.providers.base import LLMProvider, parse_json_object
from amana.utils.helpers import now_in

_TIME_SLOTS = ("start_time", "end_time")

_TEXT_PARSERS: dict[str, Callable[[str], Any]] = {
    "mail_query": parsers.parse_mail_query,
    "memory_content": parsers.parse_memory_content,
    "hashtags": lambda text: parsers.parse_hashtags(text) or None,
    "title": parsers.parse_title,
    "subject": parsers.parse_subject,
    "body": parsers.parse_body,
}

EXTRACTION_PREAMBLE = """\
Você extrai campos de uma mensagem em português para preencher um formulário.
Hoje é {today} (fuso {tz}).
Campos desejados (nome: descrição):
{slots}
Responda APENAS com um objeto JSON contendo somente os campos que a mensagem
informa explicitamente. Não invente valores; omita o que não estiver claro.
"""


@dataclass
class Extraction:
    """Candidates for one utterance, already coerced to their stored form."""

    fields: dict[str, Any] = field(default_factory=dict)
    rejected: dict[str, str] = field(default_factory=dict)  # slot -> hint
    ambiguous: dict[str, list[Any]] = field(default_factory=dict)  # slot -> options


class EntityExtractor:
    """Fills slots of an ``IntentSchema`` from free text."""

    def __init__(
        self,
        tz_name: str = "America/Sao_Paulo",
        *,
        llm: LLMProvider | None = None,
        model: str | None = None,
        timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.tz_name = tz_name
        self.llm = llm
        self.model = model
        self.timeout = timeout
        self._clock = clock or (lambda: now_in(self.tz_name))

    def today(self) -> date:
        return self._clock().date()

    async def extract(
        self,
        schema: IntentSchema,
        text: str,
        *,
        expected: str | None = None,
        known: Mapping[str, Any] | None = None,
    ) -> Extraction:
        """Extract slot values for *schema* from *text*.

        ``expected`` names the slot that was just asked for; it enables
        whole-utterance answers and bare numbers.  ``known`` holds fields
        already collected, which the LLM pass does not ask for again.
        """
        known = known or {}
        result = self._deterministic(schema, text, expected)

        missing_free = [
            spec for spec in schema.slots
            if spec.type is SlotType.STRING
            and spec.name not in result.fields
            and spec.name not in known
            and spec.name != expected
        ]
        if self.llm is not None and expected is None and missing_free:
            for name, value in (await self._llm_pass(text, missing_free)).items():
                result.fields.setdefault(name, value)
        return result

    # ------------------------------------------------------------------
    # Deterministic pass
    # ------------------------------------------------------------------

    def _deterministic(self, schema: IntentSchema, text: str, expected: str | None) -> Extraction:
        result = Extraction()
        raw: dict[str, Any] = {}
        names = set(schema.slot_names)

        if "date" in names:
            dates = parsers.parse_dates(text, self.today())
            if len(dates) > 1:
                result.ambiguous["date"] = [d.isoformat() for d in dates]
            elif dates:
                raw["date"] = dates[0]

        if names.intersection(_TIME_SLOTS):
            span = parsers.parse_times(text, allow_bare=expected in _TIME_SLOTS)
            if expected == "end_time" and span.start and not span.end:
                raw["end_time"] = span.start
            else:
                if span.start:
                    raw["start_time"] = span.start
                if span.end and "end_time" in names:
                    raw["end_time"] = span.end

        for spec in schema.slots:
            if spec.name in raw or spec.name in result.ambiguous:
                continue
            value = self._parse_slot(spec, text, expected)
            if value is not None:
                raw[spec.name] = value

        for name, value in raw.items():
            coerced, hint = schema.slot(name).coerce(value)
            if hint:
                result.rejected[name] = hint
            else:
                result.fields[name] = coerced

        if expected and expected in names and expected not in result.fields:
            if expected not in result.rejected and expected not in result.ambiguous:
                result.rejected[expected] = schema.slot(expected).hint
        return result

    def _parse_slot(self, spec: SlotSpec, text: str, expected: str | None) -> Any:
        is_expected = spec.name == expected

        if spec.type is SlotType.EMAIL_LIST:
            emails = parsers.parse_emails(text)
            if emails:
                return emails
            if parsers.says_only_me(text):
                return []
            return None

        if spec.type is SlotType.INT:
            return parsers.parse_count(text, allow_bare=is_expected)

        if spec.type is SlotType.STRING_LIST:
            found = parsers.parse_hashtags(text)
            if found:
                return found
            return text if is_expected else None

        if spec.type is SlotType.STRING:
            parser = _TEXT_PARSERS.get(spec.parser or "")
            value = parser(text) if parser else None
            if value is None and is_expected:
                value = text.strip() or None
            return value

        return None

    # ------------------------------------------------------------------
    # LLM pass
    # ------------------------------------------------------------------

    async def _llm_pass(self, text: str, slots: list[SlotSpec]) -> dict[str, Any]:
        listing = "\n".join(f"- {spec.name}: {spec.prompt}" for spec in slots)
        preamble = EXTRACTION_PREAMBLE.format(today=self.today().isoformat(), tz=self.tz_name, slots=listing)
        try:
            response = await self.llm.chat(
                [
                    {"role": "system", "content": preamble},
                    {"role": "user", "content": text},
                ],
                model=self.model,
                max_tokens=400,
                temperature=0.0,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Entity extraction LLM call failed: {e}")
            return {}
        if response.failed:
            return {}
        data = parse_json_object(response.content) or {}

        out: dict[str, Any] = {}
        for spec in slots:
            if spec.name not in data:
                continue
            value, hint = spec.coerce(data[spec.name])
            if hint is None:
                out[spec.name] = value
        if out:
            logger.debug(f"LLM extraction filled {sorted(out)}")
        return out
