"""Host side of the bridge: dispatches procedures and answers every request once."""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Mapping
from typing import Any, TypeVar, assert_never

from loguru import logger
from pydantic import BaseModel, ValidationError

from fractal.audit import AuditStore
from fractal.core.error_format import INTERRUPTED_TURN_MESSAGE
from fractal.core.orchestrator import ConversationOrchestrator
from fractal.errors import MalformedEnvelopeError
from fractal.logging_utils import bind_conversation, reset_conversation
from fractal.rpc.channel import MessageChannel
from fractal.rpc.protocol import (
    REQUEST_TYPE,
    ConversationIdArgs,
    NoArgs,
    RemoteResultEnvelope,
    RpcMethod,
    SaveTranscriptArgs,
    SaveUIStateArgs,
    SendMessageArgs,
    parse_request,
)
from fractal.storage import ConversationStore, Message, TranscriptWriter, UIStateStore


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


ArgsT = TypeVar("ArgsT", bound=BaseModel)


def _parse_args(model: type[ArgsT], args: Mapping[str, Any]) -> ArgsT:
    try:
        return model.model_validate(args)
    except ValidationError as exc:
        raise MalformedEnvelopeError(f"Malformed request: {exc}") from exc


class RpcServer:
    """Serves the fixed procedure set over one channel.

    Each request runs in its own task, so calls interleave; writes to one
    conversation are serialized by a per-conversation lock.
    """

    def __init__(
        self,
        channel: MessageChannel,
        *,
        conversations: ConversationStore,
        orchestrator: ConversationOrchestrator,
        ui_state: UIStateStore,
        transcripts: TranscriptWriter,
        audits: AuditStore,
        handler_timeout_seconds: float | None = None,
    ) -> None:
        self._channel = channel
        self._conversations = conversations
        self._orchestrator = orchestrator
        self._ui_state = ui_state
        self._transcripts = transcripts
        self._audits = audits
        self._handler_timeout_seconds = handler_timeout_seconds
        self._seen_ids: set[str] = set()
        self._tasks: set[asyncio.Task[RemoteResultEnvelope | None]] = set()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def serve(self) -> None:
        """Read requests until cancelled."""
        while True:
            message = await self._channel.receive()
            if message is not None:
                self.submit(message)

    def submit(self, message: Any) -> asyncio.Task[RemoteResultEnvelope | None]:
        task = asyncio.create_task(self.handle_message(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def close(self) -> None:
        """Cancel in-flight requests and wait for them to settle."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        # Entries vanish once no request holds the lock.
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def handle_message(self, message: Any) -> RemoteResultEnvelope | None:
        if not isinstance(message, Mapping) or message.get("type") != REQUEST_TYPE:
            logger.debug("rpc.message.ignored")
            return None

        request_id = message.get("id")
        if not isinstance(request_id, str) or not request_id:
            logger.warning("rpc.request.dropped reason=missing_id")
            return None
        if request_id in self._seen_ids:
            logger.warning("rpc.request.dropped reason=duplicate_id id={}", request_id)
            return None
        self._seen_ids.add(request_id)

        try:
            envelope = parse_request(message)
            logger.info("rpc.call.start id={} method={}", request_id, envelope.method)
            async with asyncio.timeout(self._handler_timeout_seconds):
                result = await self.dispatch(envelope.method, envelope.args)
            response = RemoteResultEnvelope(id=request_id, result=result)
        except TimeoutError:
            logger.warning("rpc.dispatch.timeout id={}", request_id)
            response = RemoteResultEnvelope(
                id=request_id,
                error=f"Request timed out after {self._handler_timeout_seconds}s",
            )
        except Exception as exc:
            logger.warning("rpc.dispatch.error id={} error={!r}", request_id, exc)
            response = RemoteResultEnvelope(id=request_id, error=_error_text(exc))

        try:
            await self._channel.post(response.to_message())
        except (TypeError, ValueError) as exc:
            logger.exception("rpc.response.unserializable id={}", request_id)
            response = RemoteResultEnvelope(id=request_id, error=_error_text(exc))
            await self._channel.post(response.to_message())
        return response

    async def dispatch(self, method: RpcMethod, args: Mapping[str, Any]) -> Any:
        match method:
            case RpcMethod.CREATE_CONVERSATION:
                _parse_args(NoArgs, args)
                return await self.create_conversation()
            case RpcMethod.LIST_CONVERSATIONS:
                _parse_args(NoArgs, args)
                return await self.list_conversations()
            case RpcMethod.LOAD_CONVERSATION:
                return await self.load_conversation(_parse_args(ConversationIdArgs, args))
            case RpcMethod.DELETE_CONVERSATION:
                return await self.delete_conversation(_parse_args(ConversationIdArgs, args))
            case RpcMethod.SEND_MESSAGE:
                return await self.send_message(_parse_args(SendMessageArgs, args))
            case RpcMethod.SAVE_TRANSCRIPT:
                return await self.save_transcript(_parse_args(SaveTranscriptArgs, args))
            case RpcMethod.SAVE_UI_STATE:
                return await self.save_ui_state(_parse_args(SaveUIStateArgs, args))
            case RpcMethod.LOAD_UI_STATE:
                _parse_args(NoArgs, args)
                return await self.load_ui_state()
            case _:
                assert_never(method)

    async def create_conversation(self) -> str:
        conversation = await self._conversations.create()
        return conversation.id

    async def list_conversations(self) -> list[dict[str, Any]]:
        return [item.to_json_dict() for item in await self._conversations.list()]

    async def load_conversation(self, args: ConversationIdArgs) -> dict[str, Any]:
        conversation = await self._conversations.get(args.id)
        return conversation.to_json_dict()

    async def delete_conversation(self, args: ConversationIdArgs) -> None:
        async with self._lock_for(args.id):
            await self._conversations.delete(args.id)
            await asyncio.to_thread(self._audits.delete, args.id)

    async def send_message(self, args: SendMessageArgs) -> str:
        token = bind_conversation(args.conversation_id)
        try:
            async with self._lock_for(args.conversation_id):
                conversation = await self._conversations.get(args.conversation_id)
                conversation.messages.append(Message(role="user", content=args.message))
                await self._conversations.save(conversation)

                try:
                    outcome = await self._orchestrator.chat(
                        [{"role": item.role, "content": item.content} for item in conversation.messages],
                        audit=await asyncio.to_thread(self._audits.log_for, conversation.id),
                    )
                except asyncio.CancelledError:
                    # Keep the stored conversation alternating before the cancellation propagates.
                    logger.warning("rpc.send_message.interrupted conversation={}", conversation.id)
                    conversation.messages.append(Message(role="assistant", content=INTERRUPTED_TURN_MESSAGE))
                    await self._conversations.save(conversation)
                    raise

                conversation.messages.append(Message(role="assistant", content=outcome.text))
                await self._conversations.save(conversation)
                return outcome.text
        finally:
            reset_conversation(token)

    async def save_transcript(self, args: SaveTranscriptArgs) -> None:
        conversation = await self._conversations.get(args.conversation_id)
        audit = await asyncio.to_thread(self._audits.log_for, conversation.id)
        exchanges = [entry.to_payload() for entry in audit.entries()]
        await self._transcripts.write(
            conversation,
            system_prompt=self._orchestrator.system_prompt,
            exchanges=exchanges,
        )

    async def save_ui_state(self, args: SaveUIStateArgs) -> None:
        await self._ui_state.save(args.state)

    async def load_ui_state(self) -> dict[str, Any] | None:
        state = await self._ui_state.load()
        return state.to_json_dict() if state is not None else None
