from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from amana.actions.commands import Command
from amana.flows.intents import (
    ATTENDEES_HINT,
    build_default_registry,
    create_event_schema,
    memory_title,
    to_html,
)
from amana.flows.registry import (
    STAGE_CONFIRMATION,
    STAGE_RETRY,
    FlowRegistry,
    IntentSchema,
    SlotSpec,
    SlotType,
    slot_from_stage,
    stage_for,
)
from amana.nl.intent_engine import IntentTag

TZ = "America/Sao_Paulo"


def clock() -> datetime:
    return datetime(2026, 10, 18, 9, 0, tzinfo=ZoneInfo(TZ))


EVENT = create_event_schema(TZ, clock=clock)


def test_stage_helpers() -> None:
    assert stage_for("summary") == "awaiting_summary"
    assert slot_from_stage("awaiting_start_time") == "start_time"
    assert slot_from_stage(STAGE_CONFIRMATION) is None
    assert slot_from_stage(STAGE_RETRY) is None
    assert slot_from_stage(None) is None
    assert slot_from_stage("executing") is None


def test_slot_order_and_next_missing() -> None:
    assert EVENT.slot_names == ["summary", "date", "start_time", "end_time", "attendees", "description"]
    assert EVENT.next_missing_slot({}).name == "summary"
    fields = {"summary": "X", "date": "2026-10-19", "start_time": "10:00"}
    # end_time is derivable, attendees is optional but asked
    assert EVENT.next_missing_slot(fields).name == "attendees"
    fields["attendees"] = []
    assert EVENT.next_missing_slot(fields) is None
    assert EVENT.is_complete(fields)


def test_end_time_default_never_crosses_midnight() -> None:
    fields = {"summary": "X", "date": "2026-10-19", "start_time": "23:30", "attendees": []}
    assert EVENT.next_missing_slot(fields).name == "end_time"
    assert EVENT.with_defaults({"start_time": "10:15"})["end_time"] == "11:15"


def test_assign_rejects_without_overwriting() -> None:
    stored = {"summary": "X", "date": "2026-10-19", "start_time": "10:00"}
    result = EVENT.assign(stored, {"end_time": "09:00"}, stage="awaiting_end_time")
    assert "end_time" in result.rejected
    assert "end_time" not in result.fields

    past = EVENT.assign(stored, {"date": "2026-10-01"}, stage="awaiting_date")
    assert past.rejected == {"date": "Essa data já passou. Para que dia?"}
    assert past.fields["date"] == "2026-10-19"


def test_assign_only_replaces_the_reprompted_slot() -> None:
    stored = {"summary": "X", "date": "2026-10-19"}
    kept = EVENT.assign(stored, {"summary": "Y"}, stage="awaiting_start_time")
    assert kept.fields["summary"] == "X"
    replaced = EVENT.assign(stored, {"summary": "Y"}, stage="awaiting_summary")
    assert replaced.fields["summary"] == "Y"
    assert replaced.accepted == ["summary"]


def test_attendees_coercion() -> None:
    spec = EVENT.slot("attendees")
    assert spec.coerce([]) == ([], None)
    assert spec.coerce("a@x.com; b@y.com") == (["a@x.com", "b@y.com"], None)
    assert spec.coerce(["Rafael"]) == (None, ATTENDEES_HINT)


def test_event_payload_is_iso_with_offset() -> None:
    built = EVENT.build_command({
        "summary": "Alinhamento X",
        "date": "2026-10-19",
        "start_time": "10:00",
        "attendees": [],
    })
    assert built.command is Command.CREATE_EVENT
    assert built.data == {
        "summary": "Alinhamento X",
        "start": "2026-10-19T10:00:00-03:00",
        "end": "2026-10-19T11:00:00-03:00",
        "time_zone": TZ,
    }


def test_other_payloads() -> None:
    registry = build_default_registry(TZ, clock=clock)
    email = registry.get("SEND_EMAIL").build_command({"to": ["a@x.com"], "subject": "Oi", "body": "a < b\nfim"})
    assert email.data == {"to": ["a@x.com"], "subject": "Oi", "body_html": "a &lt; b<br>fim"}
    read = registry.get(IntentTag.READ_EMAILS).build_command({"max_results": 2})
    assert read.data == {"query": "in:inbox", "max_results": 2}
    memory = registry.get(IntentTag.SAVE_MEMORY).build_command({"content": "o dia está bonito"})
    assert memory.data == {"title": "o dia está bonito", "content": "o dia está bonito", "tags": ["telegram"]}
    agenda = registry.get(IntentTag.SHOW_AGENDA).build_command({})
    assert agenda.data == {"max": 5}


def test_memory_title_truncates_on_word_boundary() -> None:
    title = memory_title({"content": "palavra " * 20})
    assert title.endswith("…")
    assert len(title) <= 61
    assert memory_title({"content": "  "}) is None
    assert to_html("<b>") == "&lt;b&gt;"


def test_confirmation_is_configurable() -> None:
    default = build_default_registry(TZ)
    assert default.get("SEND_EMAIL").requires_confirmation
    assert not default.get("CREATE_EVENT").requires_confirmation
    custom = build_default_registry(TZ, ["create_event"])
    assert custom.get("CREATE_EVENT").requires_confirmation
    assert not custom.get("SEND_EMAIL").requires_confirmation


def test_registry_lookup_and_none_refused() -> None:
    registry = build_default_registry(TZ)
    assert "READ_EMAILS" in registry
    assert "BOOK_FLIGHT" not in registry
    assert registry.get(None) is None
    assert set(registry.intents) == {t for t in IntentTag if t is not IntentTag.NONE}
    with pytest.raises(ValueError):
        FlowRegistry([IntentSchema(IntentTag.NONE, Command.SAVE_FILE, (), lambda f: {})])


def test_restrict_drops_foreign_keys() -> None:
    schema = IntentSchema(
        IntentTag.SHOW_AGENDA,
        Command.SHOW_AGENDA,
        (SlotSpec("max", SlotType.INT, "Quantos?", required=False, bounds=(1, 10)),),
        lambda f: dict(f),
    )
    assert schema.restrict({"max": 3, "summary": "X"}) == {"max": 3}
