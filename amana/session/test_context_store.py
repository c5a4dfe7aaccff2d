import json
from pathlib import Path

import pytest

from amana.session.context_store import ContextStore, StoreError
from amana.session.conversation import Conversation, deep_merge


@pytest.mark.asyncio
async def test_missing_conversation_loads_idle(tmp_path: Path) -> None:
    conv = await ContextStore(tmp_path).load("42")
    assert conv.conversation_id == "42"
    assert conv.is_idle and conv.fields == {} and conv.stage is None


@pytest.mark.asyncio
async def test_save_load_round_trip(tmp_path: Path) -> None:
    store = ContextStore(tmp_path)
    conv = Conversation("chat:1", intent="CREATE_EVENT", fields={"summary": "Alinhamento X", "attendees": []},
                        stage="awaiting_date")
    conv.add_history("user", "agende uma reunião")
    saved = await store.save("chat:1", conv)

    loaded = await store.load("chat:1")
    assert loaded.to_dict() == saved.to_dict()
    assert store.path_for("chat:1").name == "chat_1.json"
    assert not list(tmp_path.glob("*.tmp"))


@pytest.mark.asyncio
async def test_idle_invariant_enforced_on_save(tmp_path: Path) -> None:
    store = ContextStore(tmp_path)
    conv = Conversation("7", intent=None, fields={"summary": "stale"}, stage="awaiting_date")
    await store.save("7", conv)
    raw = json.loads(store.path_for("7").read_text(encoding="utf-8"))
    assert raw["intent"] is None and raw["fields"] == {} and raw["stage"] is None


@pytest.mark.asyncio
async def test_task_helpers_and_history_bound(tmp_path: Path) -> None:
    store = ContextStore(tmp_path, history_limit=12)
    await store.begin_task("9", "SEND_EMAIL", {"to": ["a@x.com"]})
    conv = await store.update("9", stage="awaiting_subject", fields={"subject": "Oi"})
    assert conv.intent == "SEND_EMAIL"
    assert conv.fields == {"to": ["a@x.com"], "subject": "Oi"}

    for i in range(20):
        await store.push_history("9", "user", f"msg {i}")
    conv = await store.end_task("9")
    assert conv.is_idle and conv.fields == {} and conv.stage is None
    assert len(conv.history) == 12
    assert conv.history[-1]["text"] == "msg 19"


@pytest.mark.asyncio
async def test_corrupt_file_is_quarantined(tmp_path: Path) -> None:
    store = ContextStore(tmp_path)
    store.path_for("5").write_text("{not json", encoding="utf-8")
    conv = await store.load("5")
    assert conv.is_idle
    assert (tmp_path / "5.json.corrupt").exists()


@pytest.mark.asyncio
async def test_legacy_nested_context_is_read(tmp_path: Path) -> None:
    store = ContextStore(tmp_path)
    store.path_for("3").write_text(
        json.dumps({"context": {"intent": "SAVE_MEMORY", "stage": "awaiting_content", "fields": {}},
                    "lastUpdate": "2024-01-01T00:00:00+00:00"}),
        encoding="utf-8",
    )
    conv = await store.load("3")
    assert conv.intent == "SAVE_MEMORY"
    assert conv.stage == "awaiting_content"
    assert conv.last_update == "2024-01-01T00:00:00+00:00"


@pytest.mark.asyncio
async def test_reset_and_list(tmp_path: Path) -> None:
    store = ContextStore(tmp_path)
    await store.save("a", Conversation("a"))
    await store.save("b", Conversation("b"))
    assert store.list_ids() == ["a", "b"]
    assert await store.reset("a") is True
    assert await store.reset("a") is False
    assert store.list_ids() == ["b"]


@pytest.mark.asyncio
async def test_unwritable_store_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = ContextStore(tmp_path)
    store.base_dir = blocker  # a file, not a directory
    with pytest.raises(StoreError):
        await store.save("1", Conversation("1"))


def test_deep_merge_replaces_lists() -> None:
    merged = deep_merge({"a": {"b": 1, "c": [1]}, "d": 1}, {"a": {"c": [2]}, "e": 2})
    assert merged == {"a": {"b": 1, "c": [2]}, "d": 1, "e": 2}
