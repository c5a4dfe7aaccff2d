"""User-facing pt-BR texts and result formatting.

Replies use light markdown (``**bold**``, ``_italic_``); the Telegram
channel converts it to HTML.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from amana.actions.commands import Command
from amana.dialog.results import ActionResult
from amana.flows.registry import IntentSchema, SlotSpec
from amana.nl.intent_engine import IntentTag

CANCELLED = "🚫 Ação cancelada."
NOTHING_TO_CANCEL = "Tudo bem, não há nada em andamento. Pode pedir outra coisa!"
TRANSIENT = "Não consegui agora, quer tentar de novo?"
BUSY = "⏳ Ainda estou processando sua mensagem anterior. Tente de novo em instantes."
GENERIC_ERROR = "❌ Tive um problema interno. Tente novamente em alguns instantes."
STALE_EXECUTION = (
    "⚠️ Uma ação anterior foi interrompida e pode não ter sido concluída. "
    "Confira antes de pedir de novo."
)
AUDIO_NOT_UNDERSTOOD = "❌ Não consegui entender o áudio. Pode tentar novamente?"
YES_NO_HINT = "Responda *sim* ou *não*."

HELP = (
    "Desculpe, não entendi o que deseja fazer. Você pode pedir, por exemplo:\n"
    "- 'Agende uma reunião'\n"
    "- 'Leia meus e-mails'\n"
    "- 'Envie um e-mail'\n"
    "- 'Salve uma memória'\n"
    "- 'Mostre minha agenda'\n"
    "- 'Cancele o que está fazendo'"
)


def retry_question() -> str:
    return f"{TRANSIENT} {YES_NO_HINT}"


def ambiguous(spec: SlotSpec, options: list[Any]) -> str:
    if spec.name == "date":
        shown = " ou ".join(_short_date(o) for o in options)
        return f"Entendi mais de uma data ({shown}). Para qual dia é?"
    shown = " ou ".join(str(o) for o in options)
    return f"Encontrei mais de uma opção ({shown}). Qual delas? {spec.prompt}"


def input_invalid(spec: SlotSpec, detail: str) -> str:
    lead = f"⚠️ O serviço recusou esse valor ({detail})." if detail else "⚠️ O serviço recusou esse valor."
    return f"{lead} {spec.prompt}"


def permanent_failure(command: Command, detail: str = "") -> str:
    what = {
        Command.CREATE_EVENT: "criar o evento",
        Command.READ_EMAILS: "ler os e-mails",
        Command.SEND_EMAIL: "enviar o e-mail",
        Command.SAVE_MEMORY: "salvar a memória",
        Command.SHOW_AGENDA: "acessar a agenda",
        Command.SAVE_FILE: "salvar o arquivo",
    }[command]
    suffix = f": {detail}" if detail else "."
    return f"❌ Não consegui {what}{suffix}"


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------

def confirmation_prompt(schema: IntentSchema, fields: Mapping[str, Any]) -> str:
    if schema.intent is IntentTag.SEND_EMAIL:
        to = ", ".join(fields.get("to") or [])
        return (
            "Vou enviar este e-mail:\n"
            f"**Para:** {to}\n"
            f"**Assunto:** {fields.get('subject', '')}\n\n"
            f"{fields.get('body', '')}\n\n"
            f"Posso enviar? {YES_NO_HINT}"
        )
    if schema.intent is IntentTag.CREATE_EVENT:
        return f"Vou criar: {_event_line(fields)}. Posso criar? {YES_NO_HINT}"
    lines = [f"- {name}: {_show(value)}" for name, value in fields.items()]
    return "Confere?\n" + "\n".join(lines) + f"\n\n{YES_NO_HINT}"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

def format_result(command: Command, result: ActionResult, fields: Mapping[str, Any]) -> str:
    payload = result.payload
    if command is Command.CREATE_EVENT:
        text = f"📅 Reunião criada: {_event_line(fields)}"
        attendees = fields.get("attendees") or []
        if attendees:
            text += f"\nConvidados: {', '.join(attendees)}"
        if payload.get("html_link"):
            text += f"\n{payload['html_link']}"
        return text

    if command is Command.READ_EMAILS:
        messages = payload.get("messages") or []
        if not messages:
            return "Nenhum e-mail encontrado 📭"
        lines = ["📬 Seus e-mails:"]
        for i, msg in enumerate(messages, 1):
            subject = msg.get("subject") or "(sem assunto)"
            lines.append(f"{i}. **{subject}**\n   De: {msg.get('from') or '?'}")
        return "\n".join(lines)

    if command is Command.SEND_EMAIL:
        to = fields.get("to") or payload.get("to") or []
        return f"📤 E-mail enviado para {', '.join(to)}"

    if command is Command.SAVE_MEMORY:
        return f"🧠 Memória salva com o título: **{fields.get('title', '')}**"

    if command is Command.SHOW_AGENDA:
        events = payload.get("events") or []
        if not events:
            return "🗓️ Nenhum compromisso encontrado."
        lines = ["🗓️ Seus próximos compromissos:"]
        for ev in events:
            lines.append(f"• {_when(ev.get('start'))}: {ev.get('summary') or '(sem título)'}")
        return "\n".join(lines)

    return f"📁 Arquivo salvo: {payload.get('name') or result.id or ''}".rstrip()


def _event_line(fields: Mapping[str, Any]) -> str:
    summary = fields.get("summary", "")
    day = _short_date(fields.get("date", ""))
    start = fields.get("start_time", "")
    end = fields.get("end_time", "")
    return f"**{summary}** ({day}, {start}–{end})"


def _short_date(value: Any) -> str:
    try:
        return date.fromisoformat(str(value)).strftime("%d/%m")
    except ValueError:
        return str(value)


def _when(value: Any) -> str:
    """ISO datetime or all-day date to ``dd/mm HH:MM`` / ``dd/mm``."""
    raw = str(value or "")
    try:
        if len(raw) <= 10:
            return date.fromisoformat(raw).strftime("%d/%m")
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime("%d/%m %H:%M")
    except ValueError:
        return raw or "?"


def _show(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) or "—"
    return str(value)
