import base64
import json
from email import message_from_bytes

import httpx
import pytest

from amana.actions.dispatcher import ActionDispatcher, BackendError
from amana.actions.google import GoogleCredentials, GoogleWorkspaceBackend
from amana.dialog.results import ErrorKind

CREDS = GoogleCredentials("cid", "secret", "refresh")


class FakeGoogle:
    """Minimal stand-in for the Google REST endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith("https://oauth2.googleapis.com/token"):
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer tok"
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"error": {"message": "nope"}})
        if "/calendar/v3/" in url and request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(200, json={"id": "ev1", "summary": body["summary"], "htmlLink": "https://cal/ev1"})
        if "/calendar/v3/" in url:
            return httpx.Response(200, json={"items": [
                {"id": "e1", "summary": "Daily", "start": {"dateTime": "2026-10-19T09:00:00-03:00"}},
                {"id": "e2", "start": {"date": "2026-10-20"}},
            ]})
        if url.startswith("https://gmail.googleapis.com/gmail/v1/users/me/messages/send"):
            return httpx.Response(200, json={"id": "m-sent"})
        if url.startswith("https://gmail.googleapis.com/gmail/v1/users/me/messages/m"):
            mid = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"snippet": "oi", "payload": {"headers": [
                {"name": "From", "value": f"{mid}@x.com"},
                {"name": "Subject", "value": f"Assunto {mid}"},
            ]}})
        if url.startswith("https://gmail.googleapis.com/gmail/v1/users/me/messages"):
            return httpx.Response(200, json={"messages": [{"id": "m1"}, {"id": "m2"}]})
        if "sheets.googleapis.com" in url:
            return httpx.Response(200, json={"updates": {"updatedRange": "Sheet1!A7:F7"}})
        if "upload/drive" in url:
            return httpx.Response(200, json={"id": "f1", "name": "nota.txt"})
        return httpx.Response(404)


def backend(fake: FakeGoogle, **kwargs) -> GoogleWorkspaceBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return GoogleWorkspaceBackend(CREDS, client=client, **kwargs)


@pytest.mark.asyncio
async def test_create_event_with_attendees() -> None:
    fake = FakeGoogle()
    gw = backend(fake)
    result = await gw.create_event({
        "summary": "Alinhamento X",
        "start": "2026-10-19T10:00:00-03:00",
        "end": "2026-10-19T11:00:00-03:00",
        "attendees": ["ana@example.com"],
    })
    assert result["id"] == "ev1"
    assert result["html_link"] == "https://cal/ev1"
    sent = fake.requests[-1]
    assert sent.url.params["sendUpdates"] == "all"
    body = json.loads(sent.content)
    assert body["start"] == {"dateTime": "2026-10-19T10:00:00-03:00", "timeZone": "America/Sao_Paulo"}
    assert body["attendees"] == [{"email": "ana@example.com"}]
    await gw.close()


@pytest.mark.asyncio
async def test_token_is_cached() -> None:
    fake = FakeGoogle()
    gw = backend(fake)
    await gw.show_agenda({"max": 2})
    await gw.show_agenda({"max": 2})
    assert fake.token_calls == 1
    await gw.close()


@pytest.mark.asyncio
async def test_agenda_and_read_emails() -> None:
    fake = FakeGoogle()
    gw = backend(fake)
    agenda = await gw.show_agenda({"max": 2})
    assert [e["summary"] for e in agenda["events"]] == ["Daily", "Sem título"]
    assert agenda["events"][1]["start"] == "2026-10-20"

    mails = await gw.read_emails({"max_results": 2})
    assert mails["total"] == 2
    assert mails["messages"][0] == {
        "id": "m1", "from": "m1@x.com", "subject": "Assunto m1", "date": None, "snippet": "oi",
    }
    await gw.close()


@pytest.mark.asyncio
async def test_send_email_builds_html_mime() -> None:
    fake = FakeGoogle()
    gw = backend(fake)
    result = await gw.send_email({"to": "ana@example.com", "subject": "Oi", "body_html": "<p>olá</p>"})
    assert result == {"id": "m-sent", "to": ["ana@example.com"]}
    raw = json.loads(fake.requests[-1].content)["raw"]
    mime = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
    assert mime["To"] == "ana@example.com"
    assert mime.get_content_type() == "text/html"
    await gw.close()


@pytest.mark.asyncio
async def test_memory_and_file() -> None:
    fake = FakeGoogle()
    gw = backend(fake, spreadsheet_id="sheet", drive_folder_id="folder")
    memory = await gw.save_memory({"title": "t", "content": "c", "tags": ["a", "b"]})
    assert memory == {"id": "Sheet1!A7:F7", "title": "t"}
    row = json.loads(fake.requests[-1].content)["values"][0]
    assert row[1:5] == ["t", "c", "a, b", "telegram"]

    saved = await gw.save_file({"name": "nota.txt", "text": "olá"})
    assert saved["id"] == "f1"
    upload = fake.requests[-1]
    assert upload.headers["Content-Type"].startswith("multipart/related; boundary=")
    assert b'"parents": ["folder"]' in upload.content
    assert "olá".encode() in upload.content
    await gw.close()


@pytest.mark.asyncio
async def test_invalid_base64_is_input_invalid() -> None:
    gw = backend(FakeGoogle())
    with pytest.raises(BackendError) as info:
        await gw.save_file({"name": "x.bin", "base64": "***"})
    assert info.value.kind is ErrorKind.INPUT_INVALID
    await gw.close()


@pytest.mark.asyncio
async def test_missing_sheet_and_credentials_are_permanent() -> None:
    gw = backend(FakeGoogle())
    with pytest.raises(BackendError) as info:
        await gw.save_memory({"title": "t", "content": "c"})
    assert info.value.kind is ErrorKind.BACKEND_PERMANENT

    bare = GoogleWorkspaceBackend(GoogleCredentials("", "", ""), client=httpx.AsyncClient(
        transport=httpx.MockTransport(FakeGoogle())))
    result = await ActionDispatcher(bare).execute("SHOW_AGENDA", {})
    assert result.error.kind is ErrorKind.BACKEND_PERMANENT
    await bare.close()
    await gw.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "kind"),
    [(503, ErrorKind.BACKEND_TRANSIENT), (400, ErrorKind.INPUT_INVALID), (403, ErrorKind.BACKEND_PERMANENT)],
)
async def test_http_failures_are_classified(status: int, kind: ErrorKind) -> None:
    fake = FakeGoogle()
    fake.fail_with = status
    dispatcher = ActionDispatcher(backend(fake))
    result = await dispatcher.execute("CREATE_EVENT", {
        "summary": "X", "start": "2026-10-19T10:00:00-03:00", "end": "2026-10-19T11:00:00-03:00",
    })
    assert result.error.kind is kind
    assert "nope" in result.error.detail
    await dispatcher.close()
