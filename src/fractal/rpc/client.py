"""UI side of the bridge: correlates responses with pending calls by id."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Mapping
from contextlib import suppress
from typing import Any

from loguru import logger

from fractal.errors import RpcClosedError, RpcError, RpcTimeoutError
from fractal.rpc.channel import MessageChannel
from fractal.rpc.protocol import RESPONSE_TYPE, RemoteCallEnvelope, RpcMethod
from fractal.storage.models import Conversation, ConversationMetadata, UIState

_DEFAULT_TIMEOUT = object()


class RpcClient:
    """Calls host procedures over a channel.

    Responses may arrive in any order; each resolves only the call with the
    matching id. Every call carries a deadline, after which its pending entry
    is dropped and a late response is ignored like any unknown id.
    """

    def __init__(self, channel: MessageChannel, *, default_timeout_seconds: float | None = None) -> None:
        self._channel = channel
        self._default_timeout_seconds = default_timeout_seconds
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._ids = itertools.count()
        self._listener: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def start(self) -> None:
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen())

    async def close(self) -> None:
        self._closed = True
        if self._listener is not None:
            self._listener.cancel()
            with suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(RpcClosedError("client closed"))

    async def __aenter__(self) -> RpcClient:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _listen(self) -> None:
        while True:
            message = await self._channel.receive()
            if message is not None:
                self.handle_response(message)

    def handle_response(self, message: Any) -> bool:
        """Resolve the matching pending call; returns False when nothing matched."""
        if not isinstance(message, Mapping) or message.get("type") != RESPONSE_TYPE:
            return False

        response_id = message.get("id")
        future = self._pending.pop(response_id, None) if isinstance(response_id, str) else None
        if future is None:
            logger.debug("rpc.response.unknown_id id={}", response_id)
            return False
        if future.done():
            return False

        error = message.get("error")
        if error is not None:
            future.set_exception(RpcError(str(error)))
        else:
            future.set_result(message.get("result"))
        return True

    async def call(
        self,
        method: RpcMethod,
        args: Mapping[str, Any] | None = None,
        *,
        timeout: float | None | object = _DEFAULT_TIMEOUT,
    ) -> Any:
        if self._closed:
            raise RpcClosedError("client closed")

        deadline = self._default_timeout_seconds if timeout is _DEFAULT_TIMEOUT else timeout
        request_id = f"rpc-{next(self._ids)}"
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        envelope = RemoteCallEnvelope(id=request_id, method=method, args=dict(args or {}))
        try:
            await self._channel.post(envelope.to_message())
            async with asyncio.timeout(deadline):  # type: ignore[arg-type]
                return await future
        except TimeoutError as exc:
            raise RpcTimeoutError(f"{method} timed out after {deadline}s") from exc
        finally:
            self._pending.pop(request_id, None)

    async def create_conversation(self) -> str:
        return str(await self.call(RpcMethod.CREATE_CONVERSATION))

    async def list_conversations(self) -> list[ConversationMetadata]:
        result = await self.call(RpcMethod.LIST_CONVERSATIONS)
        return [ConversationMetadata.model_validate(item) for item in result or []]

    async def load_conversation(self, conversation_id: str) -> Conversation:
        result = await self.call(RpcMethod.LOAD_CONVERSATION, {"id": conversation_id})
        return Conversation.model_validate(result)

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.call(RpcMethod.DELETE_CONVERSATION, {"id": conversation_id})

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        *,
        timeout: float | None | object = _DEFAULT_TIMEOUT,
    ) -> str:
        result = await self.call(
            RpcMethod.SEND_MESSAGE,
            {"conversationId": conversation_id, "message": message},
            timeout=timeout,
        )
        return str(result)

    async def save_transcript(self, conversation_id: str) -> None:
        await self.call(RpcMethod.SAVE_TRANSCRIPT, {"conversationId": conversation_id})

    async def save_ui_state(self, state: UIState) -> None:
        await self.call(RpcMethod.SAVE_UI_STATE, {"state": state.to_json_dict()})

    async def load_ui_state(self) -> UIState | None:
        result = await self.call(RpcMethod.LOAD_UI_STATE)
        return UIState.model_validate(result) if result is not None else None
