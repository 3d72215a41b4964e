import asyncio
import json
from pathlib import Path

import pytest

from fractal.app.runtime import AppRuntime
from fractal.config import Settings
from fractal.core.error_format import INTERRUPTED_TURN_MESSAGE, RATE_LIMIT_MESSAGE
from fractal.errors import RpcClosedError, RpcError, WorkspaceNotFoundError


class RateLimited(Exception):
    status_code = 429


def _settings() -> Settings:
    return Settings(api_key=None, rpc_timeout_seconds=5, rpc_handler_timeout_seconds=4)


@pytest.mark.asyncio
async def test_send_message_persists_both_turns(workspace: Path, scripted_client, responses) -> None:
    client = scripted_client([
        responses.tool_use(("t1", "read_file", {"path": "src/app.py"})),
        responses.text("greet returns a greeting."),
    ])

    async with AppRuntime(workspace, _settings(), model_client=client) as rpc:
        conversation_id = await rpc.create_conversation()
        answer = await rpc.send_message(conversation_id, "what does greet do?")
        conversation = await rpc.load_conversation(conversation_id)
        await rpc.save_transcript(conversation_id)

    assert answer == "greet returns a greeting."
    assert [(message.role, message.content) for message in conversation.messages] == [
        ("user", "what does greet do?"),
        ("assistant", "greet returns a greeting."),
    ]

    tool_result = client.requests[1].messages[-1]["content"][0]
    assert json.loads(tool_result["content"])["data"]["content"].startswith("def greet")

    transcript = json.loads((workspace / ".fractal" / "transcript.json").read_text(encoding="utf-8"))
    assert transcript["conversationId"] == conversation_id
    assert [message["role"] for message in transcript["messages"]] == ["user", "assistant"]
    assert [exchange["kind"] for exchange in transcript["exchanges"]] == [
        "model.request",
        "model.response",
        "tool.round",
        "model.request",
        "model.response",
    ]


@pytest.mark.asyncio
async def test_failed_turn_is_answered_and_stored(workspace: Path, scripted_client) -> None:
    async with AppRuntime(workspace, _settings(), model_client=scripted_client([RateLimited("429")])) as rpc:
        conversation_id = await rpc.create_conversation()
        answer = await rpc.send_message(conversation_id, "hello?")
        conversation = await rpc.load_conversation(conversation_id)

    assert answer == RATE_LIMIT_MESSAGE
    assert conversation.messages[-1].role == "assistant"
    assert conversation.messages[-1].content == RATE_LIMIT_MESSAGE


@pytest.mark.asyncio
async def test_missing_api_key_is_answered_with_guidance(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("FRACTAL_API_KEY", raising=False)

    async with AppRuntime(workspace, _settings()) as rpc:
        conversation_id = await rpc.create_conversation()
        answer = await rpc.send_message(conversation_id, "hello?")

    assert answer.startswith("**API Key Required**")


@pytest.mark.asyncio
async def test_conversations_are_answered_concurrently(workspace: Path, scripted_client, responses) -> None:
    async with AppRuntime(workspace, _settings(), model_client=scripted_client([responses.text("hi")])) as rpc:
        first, second = await asyncio.gather(rpc.create_conversation(), rpc.create_conversation())
        answers = await asyncio.gather(rpc.send_message(first, "one"), rpc.send_message(second, "two"))
        listed = await rpc.list_conversations()

    assert answers == ["hi", "hi"]
    assert {item.id for item in listed} == {first, second}


@pytest.mark.asyncio
async def test_delete_conversation_removes_audit_log(workspace: Path, scripted_client, responses) -> None:
    async with AppRuntime(workspace, _settings(), model_client=scripted_client([responses.text("hi")])) as rpc:
        conversation_id = await rpc.create_conversation()
        await rpc.send_message(conversation_id, "hello")
        audit_file = workspace / ".fractal" / "audit" / f"{conversation_id}.jsonl"
        assert audit_file.exists()

        await rpc.delete_conversation(conversation_id)

        assert not audit_file.exists()
        assert await rpc.list_conversations() == []
        with pytest.raises(RpcError, match="Conversation not found"):
            await rpc.load_conversation(conversation_id)


@pytest.mark.asyncio
async def test_close_cancels_in_flight_turn_and_stores_reply(workspace: Path, responses) -> None:
    entered = asyncio.Event()

    class _HangingClient:
        async def create_message(self, request):
            entered.set()
            await asyncio.sleep(30)
            return responses.text("late")

    runtime = AppRuntime(workspace, _settings(), model_client=_HangingClient())
    rpc = await runtime.connect()
    conversation_id = await rpc.create_conversation()
    pending = asyncio.create_task(rpc.send_message(conversation_id, "hello?"))
    await asyncio.wait_for(entered.wait(), timeout=2)

    await runtime.close()

    with pytest.raises(RpcClosedError):
        await pending
    conversation = await runtime.conversations.get(conversation_id)
    assert [message.role for message in conversation.messages] == ["user", "assistant"]
    assert conversation.messages[-1].content == INTERRUPTED_TURN_MESSAGE

def test_missing_workspace_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceNotFoundError):
        AppRuntime(tmp_path / "nope", _settings())
