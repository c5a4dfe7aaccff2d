import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from amana.actions.commands import Command
from amana.actions.dispatcher import ActionDispatcher, BackendError, classify_status
from amana.actions.dry_run import DryRunBackend
from amana.dialog.results import ErrorKind
from amana.observability.audit import ActionAudit


class FailingBackend(DryRunBackend):
    def __init__(self, exc: BaseException) -> None:
        super().__init__()
        self.exc = exc

    async def send_email(self, data: dict[str, Any]) -> dict[str, Any]:
        raise self.exc


class SlowBackend(DryRunBackend):
    async def show_agenda(self, data: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(1)
        return {}


EMAIL = {"to": ["a@x.com"], "subject": "Oi", "body_html": "<p>oi</p>"}


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.test")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(status, request=request))


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (400, ErrorKind.INPUT_INVALID),
        (422, ErrorKind.INPUT_INVALID),
        (401, ErrorKind.BACKEND_PERMANENT),
        (403, ErrorKind.BACKEND_PERMANENT),
        (404, ErrorKind.BACKEND_PERMANENT),
        (408, ErrorKind.BACKEND_TRANSIENT),
        (429, ErrorKind.BACKEND_TRANSIENT),
        (503, ErrorKind.BACKEND_TRANSIENT),
    ],
)
def test_classify_status(status: int, kind: ErrorKind) -> None:
    assert classify_status(status) is kind


@pytest.mark.asyncio
async def test_success_returns_id_and_payload() -> None:
    backend = DryRunBackend()
    result = await ActionDispatcher(backend).execute("send_email", EMAIL)
    assert result.ok
    assert result.id.startswith("dry-")
    assert result.payload["to"] == ["a@x.com"]
    assert backend.calls == [("SEND_EMAIL", EMAIL)]


@pytest.mark.asyncio
async def test_unknown_command_and_missing_keys_never_reach_backend() -> None:
    backend = DryRunBackend()
    dispatcher = ActionDispatcher(backend)

    unknown = await dispatcher.execute("DELETE_EVERYTHING", {})
    assert unknown.error.kind is ErrorKind.BACKEND_PERMANENT

    missing = await dispatcher.execute(Command.CREATE_EVENT, {"summary": "X"})
    assert missing.error.kind is ErrorKind.INPUT_INVALID
    assert missing.error.slot == "start"

    bounds = await dispatcher.execute(Command.READ_EMAILS, {"max_results": 11})
    assert bounds.error.kind is ErrorKind.INPUT_INVALID
    assert bounds.error.slot == "max_results"

    no_content = await dispatcher.execute(Command.SAVE_FILE, {"name": "a.txt"})
    assert no_content.error.kind is ErrorKind.INPUT_INVALID
    assert backend.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (BackendError("rate limited", ErrorKind.BACKEND_TRANSIENT), ErrorKind.BACKEND_TRANSIENT),
        (BackendError("bad to", ErrorKind.INPUT_INVALID, slot="to"), ErrorKind.INPUT_INVALID),
        (_status_error(500), ErrorKind.BACKEND_TRANSIENT),
        (_status_error(403), ErrorKind.BACKEND_PERMANENT),
        (httpx.ConnectError("down"), ErrorKind.BACKEND_TRANSIENT),
        (httpx.ReadTimeout("slow"), ErrorKind.BACKEND_TRANSIENT),
        (KeyError("oops"), ErrorKind.BACKEND_PERMANENT),
    ],
)
async def test_backend_exceptions_become_results(exc: BaseException, kind: ErrorKind) -> None:
    result = await ActionDispatcher(FailingBackend(exc)).execute(Command.SEND_EMAIL, EMAIL)
    assert not result.ok
    assert result.error.kind is kind


@pytest.mark.asyncio
async def test_timeout_is_transient() -> None:
    result = await ActionDispatcher(SlowBackend(), timeout=0.01).execute(Command.SHOW_AGENDA, {"max": 3})
    assert result.error.kind is ErrorKind.BACKEND_TRANSIENT


@pytest.mark.asyncio
async def test_every_execution_is_audited(tmp_path: Path) -> None:
    audit = ActionAudit(tmp_path / "audit" / "actions.jsonl")
    dispatcher = ActionDispatcher(DryRunBackend(), audit=audit)
    await dispatcher.execute(Command.SAVE_MEMORY, {"title": "t", "content": "c"})
    await dispatcher.execute(Command.SAVE_FILE, {"name": "big.txt", "text": "x" * 5000})
    await dispatcher.execute(Command.SEND_EMAIL, {"to": []})

    lines = (tmp_path / "audit" / "actions.jsonl").read_text(encoding="utf-8").splitlines()
    entries = [json.loads(line) for line in lines]
    assert [e["command"] for e in entries] == ["SAVE_MEMORY", "SAVE_FILE", "SEND_EMAIL"]
    assert [e["ok"] for e in entries] == [True, True, False]
    assert entries[1]["data"]["text"] == "<5000 chars>"
    assert entries[2]["error_kind"] == "input_invalid"
    assert all(len(e["hash"]) == 64 for e in entries)
    assert audit.tail(2) == entries[1:]


@pytest.mark.asyncio
async def test_audit_keeps_message_content_out(tmp_path: Path) -> None:
    audit = ActionAudit(tmp_path / "actions.jsonl")
    dispatcher = ActionDispatcher(DryRunBackend(), audit=audit)
    await dispatcher.execute(Command.SEND_EMAIL, {
        "to": ["ana@example.com", "bob@example.com"],
        "subject": "Salário",
        "body_html": "<p>Confidencial</p>",
    })
    await dispatcher.execute(Command.CREATE_EVENT, {
        "summary": "Consulta médica",
        "start": "2026-10-19T10:00:00-03:00",
        "end": "2026-10-19T11:00:00-03:00",
        "time_zone": "America/Sao_Paulo",
    })

    raw = (tmp_path / "actions.jsonl").read_text(encoding="utf-8")
    for secret in ("ana@example.com", "Salário", "Confidencial", "Consulta"):
        assert secret not in raw
    mail, event = audit.tail(2)
    assert mail["data"] == {"to": "<2 items>", "subject": "<7 chars>", "body_html": "<19 chars>"}
    assert event["data"]["summary"] == "<15 chars>"
    assert event["data"]["start"] == "2026-10-19T10:00:00-03:00"
    assert event["data"]["time_zone"] == "America/Sao_Paulo"
