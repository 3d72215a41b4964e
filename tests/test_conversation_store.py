import json
from datetime import datetime
from pathlib import Path

import pytest

from fractal.errors import ConversationNotFoundError, StorageError
from fractal.storage import (
    Conversation,
    ConversationStore,
    Message,
    TranscriptWriter,
    UIState,
    UIStateStore,
    conversation_label,
)


@pytest.mark.asyncio
async def test_create_save_and_load(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path / "conversations")
    await store.initialize()

    conversation = await store.create()
    conversation.messages.append(Message(role="user", content="hello"))
    await store.save(conversation)

    loaded = await store.get(conversation.id)
    assert loaded.id == conversation.id
    assert [message.content for message in loaded.messages] == ["hello"]

    raw = json.loads((tmp_path / "conversations" / f"{conversation.id}.json").read_text(encoding="utf-8"))
    assert set(raw) == {"id", "createdAt", "messages"}
    assert set(raw["messages"][0]) == {"role", "content", "timestamp"}
    assert raw["createdAt"].endswith("Z")


@pytest.mark.asyncio
async def test_list_is_newest_first_and_skips_corrupt_files(tmp_path: Path) -> None:
    root = tmp_path / "conversations"
    store = ConversationStore(root)
    await store.initialize()
    await store.save(Conversation(id="older", created_at="2026-10-17T08:00:00.000Z"))
    await store.save(Conversation(id="newer", created_at="2026-10-18T08:00:00.000Z"))
    (root / "broken.json").write_text("{not json", encoding="utf-8")

    listed = await store.list()

    assert [item.id for item in listed] == ["newer", "older"]
    assert listed[0].label == conversation_label("2026-10-18T08:00:00.000Z")


@pytest.mark.asyncio
async def test_missing_conversation(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path)

    assert await store.load("absent") is None
    with pytest.raises(ConversationNotFoundError, match="Conversation not found"):
        await store.get("absent")


@pytest.mark.asyncio
async def test_ids_cannot_escape_the_storage_directory(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path / "conversations")
    (tmp_path / "secret.json").write_text('{"id": "secret"}', encoding="utf-8")

    assert await store.load("../secret") is None
    with pytest.raises(StorageError):
        await store.save(Conversation(id="../escape"))
    with pytest.raises(StorageError, match="Failed to delete conversation"):
        await store.delete("../secret")


@pytest.mark.asyncio
async def test_delete_removes_file(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path)
    conversation = await store.create()

    await store.delete(conversation.id)

    assert await store.load(conversation.id) is None
    with pytest.raises(StorageError):
        await store.delete(conversation.id)


def test_conversation_label_uses_local_time() -> None:
    created = "2026-10-18T15:04:00.000Z"
    local = datetime.fromisoformat(created).astimezone()
    hour = local.hour % 12 or 12

    assert conversation_label(created) == f"{local:%b} {local.day}, {hour}:{local:%M} {local:%p}"
    assert conversation_label("not a date") == "not a date"


@pytest.mark.asyncio
async def test_ui_state_round_trip_keeps_unknown_fields(tmp_path: Path) -> None:
    store = UIStateStore(tmp_path)
    assert await store.load() is None

    await store.save(UIState.model_validate({"currentConversationId": "abc", "input": "draft", "scroll": 3}))
    state = await store.load()

    assert state is not None
    assert state.current_conversation_id == "abc"
    assert state.to_json_dict()["scroll"] == 3


@pytest.mark.asyncio
async def test_ui_state_unreadable_file_is_treated_as_missing(tmp_path: Path) -> None:
    (tmp_path / "state.json").write_text("[]", encoding="utf-8")
    assert await UIStateStore(tmp_path).load() is None


@pytest.mark.asyncio
async def test_transcript_overwrites_previous_export(tmp_path: Path) -> None:
    writer = TranscriptWriter(tmp_path)
    first = Conversation(id="one", messages=[Message(role="user", content="hi")])
    second = Conversation(id="two", messages=[Message(role="user", content="yo")])

    await writer.write(first, system_prompt="tutor")
    path = await writer.write(second, system_prompt="tutor", exchanges=[{"kind": "model.request"}])

    transcript = json.loads(path.read_text(encoding="utf-8"))
    assert transcript["conversationId"] == "two"
    assert transcript["systemPrompt"] == "tutor"
    assert [message["content"] for message in transcript["messages"]] == ["yo"]
    assert transcript["exchanges"] == [{"kind": "model.request"}]
    assert transcript["savedAt"].endswith("Z")
