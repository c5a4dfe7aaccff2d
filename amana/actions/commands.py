"""The closed set of dispatcher commands and their payload contracts."""

from __future__ import annotations

from enum import Enum
from typing import Any


class Command(str, Enum):
    CREATE_EVENT = "CREATE_EVENT"
    READ_EMAILS = "READ_EMAILS"
    SEND_EMAIL = "SEND_EMAIL"
    SAVE_MEMORY = "SAVE_MEMORY"
    SHOW_AGENDA = "SHOW_AGENDA"
    SAVE_FILE = "SAVE_FILE"

    @classmethod
    def parse(cls, value: Any) -> Command | None:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return None


# Keys that must be present (and non-empty) before a backend is called.
REQUIRED_KEYS: dict[Command, tuple[str, ...]] = {
    Command.CREATE_EVENT: ("summary", "start", "end"),
    Command.READ_EMAILS: (),
    Command.SEND_EMAIL: ("to", "subject", "body_html"),
    Command.SAVE_MEMORY: ("title", "content"),
    Command.SHOW_AGENDA: (),
    Command.SAVE_FILE: ("name",),
}

# Payload key -> slot that produced it, for re-prompting after a rejection.
PAYLOAD_SLOTS: dict[str, str] = {
    "start": "start_time",
    "end": "end_time",
    "body_html": "body",
    "max": "max",
}
