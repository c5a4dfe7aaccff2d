"""The registered intents: CREATE_EVENT, READ_EMAILS, SEND_EMAIL, SAVE_MEMORY, SHOW_AGENDA."""

from __future__ import annotations

import html
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from amana.actions.commands import Command
from amana.flows.registry import FlowRegistry, IntentSchema, SlotSpec, SlotType
from amana.nl.intent_engine import IntentTag
from amana.nl.parsers import parse_hhmm
from amana.utils.helpers import now_in

DEFAULT_MAIL_QUERY = "in:inbox"
DEFAULT_LIST_SIZE = 5
MAX_LIST_SIZE = 10
MEMORY_TITLE_LENGTH = 60
DEFAULT_MEMORY_TAGS = ["telegram"]

ATTENDEES_HINT = "Não encontrei um e-mail válido. Pode repetir ou dizer 'só eu'?"


# ---------------------------------------------------------------------------
# Defaults and validators
# ---------------------------------------------------------------------------

def _end_after_one_hour(fields: Mapping[str, Any]) -> str | None:
    start = parse_hhmm(fields.get("start_time", ""))
    if start is None:
        return None
    end = datetime.combine(date.min, start) + timedelta(hours=1)
    if end.date() != date.min:
        return None  # would cross midnight; ask instead
    return end.strftime("%H:%M")


def _end_after_start(value: Any, fields: Mapping[str, Any]) -> str | None:
    start = parse_hhmm(fields.get("start_time", ""))
    end = parse_hhmm(value)
    if start and end and end <= start:
        return "O horário de término precisa ser depois do início. Até que horas?"
    return None


def _not_in_past(tz_name: str, clock: Callable[[], datetime] | None) -> Callable[[Any, Mapping[str, Any]], str | None]:
    def check(value: Any, fields: Mapping[str, Any]) -> str | None:
        today = (clock() if clock else now_in(tz_name)).date()
        if date.fromisoformat(value) < today:
            return "Essa data já passou. Para que dia?"
        return None

    return check


def _non_empty(value: Any, fields: Mapping[str, Any]) -> str | None:
    if not value:
        return "Preciso de pelo menos um destinatário. Para quem devo enviar o e-mail?"
    return None


def memory_title(fields: Mapping[str, Any]) -> str | None:
    """Title derived from the start of the memory content."""
    content = " ".join(str(fields.get("content") or "").split())
    if not content:
        return None
    if len(content) <= MEMORY_TITLE_LENGTH:
        return content
    cut = content[:MEMORY_TITLE_LENGTH].rsplit(" ", 1)[0]
    return f"{cut}…"


def _constant(value: Any) -> Callable[[Mapping[str, Any]], Any]:
    return lambda fields: value


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _event_data(tz_name: str) -> Callable[[Mapping[str, Any]], dict[str, Any]]:
    tz = ZoneInfo(tz_name)

    def build(fields: Mapping[str, Any]) -> dict[str, Any]:
        day = date.fromisoformat(fields["date"])
        start = datetime.combine(day, parse_hhmm(fields["start_time"]), tzinfo=tz)
        end = datetime.combine(day, parse_hhmm(fields["end_time"]), tzinfo=tz)
        data: dict[str, Any] = {
            "summary": fields["summary"],
            "start": start.isoformat(),
            "end": end.isoformat(),
            "time_zone": tz_name,
        }
        if fields.get("attendees"):
            data["attendees"] = list(fields["attendees"])
        if fields.get("description"):
            data["description"] = fields["description"]
        return data

    return build


def to_html(text: str) -> str:
    """Plain text to a minimal HTML body: escaped, newlines as ``<br>``."""
    return html.escape(text).replace("\n", "<br>")


def _email_data(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "to": list(fields["to"]),
        "subject": fields["subject"],
        "body_html": to_html(fields["body"]),
    }


def _read_emails_data(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {"query": fields["query"], "max_results": fields["max_results"]}


def _memory_data(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "title": fields["title"],
        "content": fields["content"],
        "tags": list(fields.get("tags") or DEFAULT_MEMORY_TAGS),
    }


def _agenda_data(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {"max": fields["max"]}


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

def create_event_schema(
    tz_name: str,
    *,
    requires_confirmation: bool = False,
    clock: Callable[[], datetime] | None = None,
) -> IntentSchema:
    return IntentSchema(
        intent=IntentTag.CREATE_EVENT,
        command=Command.CREATE_EVENT,
        slots=(
            SlotSpec("summary", SlotType.STRING, "Qual é o título da reunião?", parser="title"),
            SlotSpec(
                "date", SlotType.DATE, "Para que dia?",
                invalid_hint="Não entendi a data. Pode dizer 'amanhã', 'sexta' ou '25/10'?",
                validator=_not_in_past(tz_name, clock),
            ),
            SlotSpec(
                "start_time", SlotType.TIME, "Que horas começa?",
                invalid_hint="Não entendi o horário. Pode dizer algo como 'às 15h' ou 'das 10h às 11h'?",
            ),
            SlotSpec(
                "end_time", SlotType.TIME, "Até que horas?",
                invalid_hint="Não entendi o horário de término. Até que horas?",
                validator=_end_after_start,
                default=_end_after_one_hour,
            ),
            SlotSpec(
                "attendees", SlotType.EMAIL_LIST,
                "Quem deve participar? Envie os e-mails ou diga 'só eu'.",
                required=False, ask=True, invalid_hint=ATTENDEES_HINT,
            ),
            SlotSpec("description", SlotType.STRING, "Quer adicionar uma descrição?", required=False),
        ),
        data_builder=_event_data(tz_name),
        requires_confirmation=requires_confirmation,
    )


def read_emails_schema(*, requires_confirmation: bool = False) -> IntentSchema:
    return IntentSchema(
        intent=IntentTag.READ_EMAILS,
        command=Command.READ_EMAILS,
        slots=(
            SlotSpec(
                "query", SlotType.STRING, "Quais e-mails devo procurar?",
                required=False, parser="mail_query", default=_constant(DEFAULT_MAIL_QUERY),
            ),
            SlotSpec(
                "max_results", SlotType.INT, "Quantos e-mails devo ler?",
                required=False, bounds=(1, MAX_LIST_SIZE),
                invalid_hint=f"Posso ler de 1 a {MAX_LIST_SIZE} e-mails por vez. Quantos?",
                default=_constant(DEFAULT_LIST_SIZE),
            ),
        ),
        data_builder=_read_emails_data,
        requires_confirmation=requires_confirmation,
    )


def send_email_schema(*, requires_confirmation: bool = True) -> IntentSchema:
    return IntentSchema(
        intent=IntentTag.SEND_EMAIL,
        command=Command.SEND_EMAIL,
        slots=(
            SlotSpec(
                "to", SlotType.EMAIL_LIST, "Para quem devo enviar o e-mail?",
                invalid_hint="Não encontrei um e-mail válido. Pode repetir o endereço?",
                validator=_non_empty,
            ),
            SlotSpec("subject", SlotType.STRING, "Qual será o assunto?", parser="subject"),
            SlotSpec("body", SlotType.STRING, "Qual é o conteúdo da mensagem?", parser="body"),
        ),
        data_builder=_email_data,
        requires_confirmation=requires_confirmation,
    )


def save_memory_schema(*, requires_confirmation: bool = False) -> IntentSchema:
    return IntentSchema(
        intent=IntentTag.SAVE_MEMORY,
        command=Command.SAVE_MEMORY,
        slots=(
            SlotSpec(
                "content", SlotType.STRING, "Qual é o conteúdo que devo registrar?",
                parser="memory_content",
            ),
            SlotSpec(
                "title", SlotType.STRING, "Quer salvar essa memória com algum título?",
                default=memory_title,
            ),
            SlotSpec(
                "tags", SlotType.STRING_LIST, "Quer adicionar tags?",
                required=False, parser="hashtags",
            ),
        ),
        data_builder=_memory_data,
        requires_confirmation=requires_confirmation,
        immediate=True,
    )


def show_agenda_schema(*, requires_confirmation: bool = False) -> IntentSchema:
    return IntentSchema(
        intent=IntentTag.SHOW_AGENDA,
        command=Command.SHOW_AGENDA,
        slots=(
            SlotSpec(
                "max", SlotType.INT, "Quantos compromissos devo mostrar?",
                required=False, bounds=(1, MAX_LIST_SIZE),
                invalid_hint=f"Posso mostrar de 1 a {MAX_LIST_SIZE} compromissos. Quantos?",
                default=_constant(DEFAULT_LIST_SIZE),
            ),
        ),
        data_builder=_agenda_data,
        requires_confirmation=requires_confirmation,
        immediate=True,
    )


def build_default_registry(
    tz_name: str = "America/Sao_Paulo",
    confirm_intents: Iterable[str] = ("SEND_EMAIL",),
    *,
    clock: Callable[[], datetime] | None = None,
) -> FlowRegistry:
    """Registry with every built-in intent; *confirm_intents* ask before dispatch."""
    confirm = {str(i).strip().upper() for i in confirm_intents}

    def needs(tag: IntentTag) -> bool:
        return tag.value in confirm

    return FlowRegistry([
        create_event_schema(tz_name, requires_confirmation=needs(IntentTag.CREATE_EVENT), clock=clock),
        read_emails_schema(requires_confirmation=needs(IntentTag.READ_EMAILS)),
        send_email_schema(requires_confirmation=needs(IntentTag.SEND_EMAIL)),
        save_memory_schema(requires_confirmation=needs(IntentTag.SAVE_MEMORY)),
        show_agenda_schema(requires_confirmation=needs(IntentTag.SHOW_AGENDA)),
    ])
