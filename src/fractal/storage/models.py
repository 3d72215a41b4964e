"""Persisted conversation records."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Message(_CamelModel):
    """One turn of a conversation."""

    role: Literal["user", "assistant"]
    content: str | list[dict[str, Any]]
    timestamp: str = Field(default_factory=utc_timestamp)


class Conversation(_CamelModel):
    id: str
    created_at: str = Field(default_factory=utc_timestamp)
    messages: list[Message] = Field(default_factory=list)


class ConversationMetadata(_CamelModel):
    id: str
    created_at: str
    label: str


class UIState(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    current_conversation_id: str | None = None
    input: str = ""
