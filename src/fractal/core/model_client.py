"""Remote model client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from anthropic import AsyncAnthropic

from fractal.config import Settings
from fractal.errors import ApiKeyNotConfiguredError

STOP_TOOL_USE = "tool_use"


@dataclass(frozen=True)
class ModelRequest:
    model: str
    system: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]]
    max_tokens: int
    temperature: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "system": self.system,
            "messages": self.messages,
            "tools": self.tools,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }


@dataclass(frozen=True)
class ModelResponse:
    """One model reply, with content blocks as plain dicts."""

    stop_reason: str | None
    content: list[dict[str, Any]]
    usage: dict[str, Any] | None = None
    model: str | None = None

    @property
    def needs_tool_output(self) -> bool:
        return self.stop_reason == STOP_TOOL_USE

    def tool_uses(self) -> list[dict[str, Any]]:
        return [block for block in self.content if block.get("type") == "tool_use"]

    def text(self) -> str:
        return "\n".join(block.get("text", "") for block in self.content if block.get("type") == "text")

    def to_payload(self) -> dict[str, Any]:
        return {
            "stop_reason": self.stop_reason,
            "content": self.content,
            "usage": self.usage,
            "model": self.model,
        }


class ModelClient(Protocol):
    async def create_message(self, request: ModelRequest) -> ModelResponse: ...


class AnthropicModelClient:
    """Messages API client; automatic retries are disabled."""

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        self._client = AsyncAnthropic(api_key=api_key, base_url=base_url, max_retries=0)

    async def create_message(self, request: ModelRequest) -> ModelResponse:
        response = await self._client.messages.create(
            model=request.model,
            system=request.system,
            messages=request.messages,  # type: ignore[arg-type]
            tools=request.tools,  # type: ignore[arg-type]
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        return ModelResponse(
            stop_reason=response.stop_reason,
            content=[block.model_dump(exclude_none=True) for block in response.content],
            usage=response.usage.model_dump(exclude_none=True) if response.usage else None,
            model=response.model,
        )


def build_model_client(settings: Settings) -> ModelClient:
    api_key = settings.resolved_api_key
    if api_key is None:
        raise ApiKeyNotConfiguredError("Anthropic API key is not configured")
    return AnthropicModelClient(api_key=api_key, base_url=settings.api_base)
