"""GoogleWorkspaceBackend – async Google REST client (Calendar, Gmail, Sheets, Drive).

Talks to the REST endpoints directly with httpx using the OAuth
refresh-token flow; no Google SDK.  HTTP failures surface as
``BackendError`` carrying the classified kind.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from email.message import EmailMessage
from typing import Any

import httpx
from loguru import logger

from amana.actions.dispatcher import BackendError, classify_status
from amana.dialog.results import ErrorKind

TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
GMAIL_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
SHEETS_URL = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"


@dataclass(frozen=True, slots=True)
class GoogleCredentials:
    client_id: str
    client_secret: str
    refresh_token: str

    @property
    def complete(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)


class GoogleWorkspaceBackend:
    """Async gateway to the Google APIs Amana uses.

    Capability domains:
      - calendar: create events, list upcoming events
      - gmail:    list/read message metadata, send HTML mail
      - sheets:   append memory rows (columns A:F)
      - drive:    multipart file upload
    """

    def __init__(
        self,
        credentials: GoogleCredentials,
        *,
        time_zone: str = "America/Sao_Paulo",
        spreadsheet_id: str = "",
        drive_folder_id: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._creds = credentials
        self.time_zone = time_zone
        self.spreadsheet_id = spreadsheet_id
        self.drive_folder_id = drive_folder_id
        self._http = client or httpx.AsyncClient(timeout=timeout)
        self._token: str = ""
        self._token_expiry: float = 0.0
        self._token_lock = asyncio.Lock()

    # ── auth ─────────────────────────────────────────────────────────────

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expiry:
                return self._token
            if not self._creds.complete:
                raise BackendError("Google OAuth credentials are not configured")
            resp = await self._http.post(TOKEN_URL, data={
                "client_id": self._creds.client_id,
                "client_secret": self._creds.client_secret,
                "refresh_token": self._creds.refresh_token,
                "grant_type": "refresh_token",
            })
            if resp.status_code >= 400:
                kind = classify_status(resp.status_code)
                if kind is ErrorKind.INPUT_INVALID:
                    kind = ErrorKind.BACKEND_PERMANENT  # invalid_grant: re-consent needed
                raise BackendError(f"token refresh failed: HTTP {resp.status_code}", kind, status_code=resp.status_code)
            body = resp.json()
            self._token = body["access_token"]
            self._token_expiry = time.monotonic() + int(body.get("expires_in", 3600)) - 60
            logger.debug("Google access token refreshed")
            return self._token

    # ── low-level request ────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Any = None,
        body: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        token = await self._access_token()
        all_headers = {"Authorization": f"Bearer {token}", **(headers or {})}
        resp = await self._http.request(method, url, params=params, json=body, content=content, headers=all_headers)
        if resp.status_code == 401:
            self._token = ""  # force a refresh next time
        if resp.status_code >= 400:
            raise BackendError(
                f"HTTP {resp.status_code}: {_error_message(resp)}",
                classify_status(resp.status_code),
                status_code=resp.status_code,
            )
        if not resp.content:
            return {}
        data = resp.json()
        if not isinstance(data, dict):
            raise BackendError("unexpected response shape")
        return data

    # ── calendar ─────────────────────────────────────────────────────────

    async def create_event(self, data: dict[str, Any]) -> dict[str, Any]:
        tz = data.get("time_zone") or self.time_zone
        event: dict[str, Any] = {
            "summary": data["summary"],
            "start": {"dateTime": data["start"], "timeZone": tz},
            "end": {"dateTime": data["end"], "timeZone": tz},
            "reminders": {"useDefault": True},
        }
        for key in ("description", "location"):
            if data.get(key):
                event[key] = data[key]
        attendees = data.get("attendees") or []
        if attendees:
            event["attendees"] = [{"email": email} for email in attendees]
        params = {"sendUpdates": "all"} if attendees else None
        created = await self._request("POST", CALENDAR_URL, params=params, body=event)
        return {
            "id": created.get("id"),
            "html_link": created.get("htmlLink"),
            "summary": created.get("summary", data["summary"]),
            "start": data["start"],
            "end": data["end"],
        }

    async def show_agenda(self, data: dict[str, Any]) -> dict[str, Any]:
        listing = await self._request("GET", CALENDAR_URL, params={
            "timeMin": datetime.now(tz=UTC).isoformat().replace("+00:00", "Z"),
            "maxResults": int(data.get("max", 5)),
            "singleEvents": "true",
            "orderBy": "startTime",
            "timeZone": self.time_zone,
        })
        events = [
            {
                "id": ev.get("id"),
                "summary": ev.get("summary") or "Sem título",
                "start": (ev.get("start") or {}).get("dateTime") or (ev.get("start") or {}).get("date") or "?",
                "end": (ev.get("end") or {}).get("dateTime") or (ev.get("end") or {}).get("date") or "?",
            }
            for ev in listing.get("items") or []
        ]
        return {"events": events, "total": len(events)}

    # ── gmail ────────────────────────────────────────────────────────────

    async def read_emails(self, data: dict[str, Any]) -> dict[str, Any]:
        listing = await self._request("GET", GMAIL_URL, params={
            "maxResults": int(data.get("max_results", 5)),
            "q": data.get("query") or "in:inbox",
        })
        messages = []
        for ref in listing.get("messages") or []:
            msg = await self._request("GET", f"{GMAIL_URL}/{ref['id']}", params=[
                ("format", "metadata"),
                ("metadataHeaders", "From"),
                ("metadataHeaders", "Subject"),
                ("metadataHeaders", "Date"),
            ])
            headers = {h.get("name"): h.get("value") for h in (msg.get("payload") or {}).get("headers") or []}
            messages.append({
                "id": ref["id"],
                "from": headers.get("From"),
                "subject": headers.get("Subject"),
                "date": headers.get("Date"),
                "snippet": msg.get("snippet", ""),
            })
        return {"messages": messages, "total": len(messages)}

    async def send_email(self, data: dict[str, Any]) -> dict[str, Any]:
        to = data["to"] if isinstance(data["to"], list) else [data["to"]]
        message = EmailMessage()
        message["To"] = ", ".join(to)
        message["Subject"] = data.get("subject") or "(sem assunto)"
        message.set_content(data["body_html"], subtype="html", charset="utf-8")
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")
        sent = await self._request("POST", f"{GMAIL_URL}/send", body={"raw": raw})
        return {"id": sent.get("id"), "to": to}

    # ── sheets ───────────────────────────────────────────────────────────

    async def save_memory(self, data: dict[str, Any]) -> dict[str, Any]:
        if not self.spreadsheet_id:
            raise BackendError("memory spreadsheet is not configured (AMANA_SHEETS_SPREADSHEET_ID)")
        row = [
            datetime.now(tz=UTC).isoformat(),
            data["title"],
            data["content"],
            ", ".join(data.get("tags") or []),
            data.get("origin", "telegram"),
            "",
        ]
        appended = await self._request(
            "POST",
            f"{SHEETS_URL}/{self.spreadsheet_id}/values/A:F:append",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            body={"values": [row]},
        )
        updated_range = (appended.get("updates") or {}).get("updatedRange")
        return {"id": updated_range, "title": data["title"]}

    # ── drive ────────────────────────────────────────────────────────────

    async def save_file(self, data: dict[str, Any]) -> dict[str, Any]:
        mime_type = data.get("mime_type") or "text/plain"
        if data.get("base64"):
            try:
                blob = base64.b64decode(data["base64"], validate=True)
            except ValueError as e:
                raise BackendError(f"invalid base64: {e}", ErrorKind.INPUT_INVALID, slot="base64") from e
        else:
            blob = str(data.get("text", "")).encode("utf-8")

        metadata: dict[str, Any] = {"name": data["name"], "mimeType": mime_type}
        folder = data.get("folder") or self.drive_folder_id
        if folder:
            metadata["parents"] = [folder]

        boundary = f"amana-{uuid.uuid4().hex}"
        body = b"".join([
            f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode(),
            json.dumps(metadata).encode("utf-8"),
            f"\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n".encode(),
            blob,
            f"\r\n--{boundary}--\r\n".encode(),
        ])
        created = await self._request(
            "POST",
            DRIVE_UPLOAD_URL,
            params={"uploadType": "multipart", "fields": "id,name,webViewLink"},
            content=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        return {
            "id": created.get("id"),
            "name": created.get("name", data["name"]),
            "web_view_link": created.get("webViewLink"),
        }

    # ── lifecycle ────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._http.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        err = resp.json().get("error")
    except ValueError:
        return resp.text[:300]
    if isinstance(err, dict):
        return str(err.get("message") or err.get("status") or err)[:300]
    return str(err or resp.text)[:300]
