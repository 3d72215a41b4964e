"""Envelopes and argument records of the UI <-> host procedure set."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from fractal.errors import MalformedEnvelopeError, UnknownMethodError
from fractal.storage.models import UIState

REQUEST_TYPE = "rpc-request"
RESPONSE_TYPE = "rpc-response"


class RpcMethod(StrEnum):
    """The closed set of remote procedures."""

    CREATE_CONVERSATION = "createConversation"
    LIST_CONVERSATIONS = "listConversations"
    LOAD_CONVERSATION = "loadConversation"
    DELETE_CONVERSATION = "deleteConversation"
    SEND_MESSAGE = "sendMessage"
    SAVE_TRANSCRIPT = "saveTranscript"
    SAVE_UI_STATE = "saveUIState"
    LOAD_UI_STATE = "loadUIState"


METHOD_NAMES = frozenset(method.value for method in RpcMethod)


class RemoteCallEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["rpc-request"] = REQUEST_TYPE
    id: str = Field(min_length=1)
    method: RpcMethod
    args: dict[str, Any] = Field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class RemoteResultEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["rpc-response"] = RESPONSE_TYPE
    id: str
    result: Any = None
    error: str | None = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> RemoteResultEnvelope:
        if self.error is not None and self.result is not None:
            raise ValueError("result and error are mutually exclusive")
        return self

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"type": self.type, "id": self.id}
        if self.error is not None:
            message["error"] = self.error
        else:
            message["result"] = self.result
        return message


class _Args(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class NoArgs(_Args):
    pass


class ConversationIdArgs(_Args):
    id: str = Field(min_length=1)


class SendMessageArgs(_Args):
    conversation_id: str = Field(min_length=1)
    message: str = Field(min_length=1)


class SaveTranscriptArgs(_Args):
    conversation_id: str = Field(min_length=1)


class SaveUIStateArgs(_Args):
    state: UIState


def parse_request(message: Mapping[str, Any]) -> RemoteCallEnvelope:
    """Validate an inbound request; unknown methods are reported distinctly."""
    method = message.get("method")
    if not isinstance(method, str) or method not in METHOD_NAMES:
        raise UnknownMethodError(method)
    try:
        return RemoteCallEnvelope.model_validate(message)
    except ValidationError as exc:
        raise MalformedEnvelopeError(f"Malformed request: {exc}") from exc
