"""Tool-use orchestration loop."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger

from fractal.audit import AuditLog
from fractal.core.error_format import error_kind, format_model_error
from fractal.core.model_client import ModelClient, ModelRequest, ModelResponse
from fractal.errors import ModelTimeoutError, ToolLoopExceededError
from fractal.tools.registry import ToolRegistry


@dataclass(frozen=True)
class ChatOutcome:
    """Result of one user turn."""

    text: str
    rounds: int
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None


def to_model_message(message: Mapping[str, Any]) -> dict[str, Any]:
    """Drop storage-only fields such as timestamps."""
    return {"role": message["role"], "content": message["content"]}


async def _record(audit: AuditLog | None, kind: str, payload: dict[str, Any]) -> None:
    if audit is not None:
        await asyncio.to_thread(audit.append, kind, payload)


class ConversationOrchestrator:
    """Drives one user turn to a final answer.

    While the model stops to ask for tool output, the requested tools run
    and their results are sent back. Model round-trips are sequential; the
    tools of one round run concurrently.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        client_factory: Callable[[], ModelClient],
        system_prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
        max_tool_rounds: int,
        model_timeout_seconds: float | None,
        turn_timeout_seconds: float | None = None,
    ) -> None:
        self._registry = registry
        self._client_factory = client_factory
        self._client: ModelClient | None = None
        self.system_prompt = system_prompt
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_tool_rounds = max_tool_rounds
        self._model_timeout_seconds = model_timeout_seconds
        self._turn_timeout_seconds = turn_timeout_seconds

    async def chat(self, messages: Sequence[Mapping[str, Any]], *, audit: AuditLog | None = None) -> ChatOutcome:
        """Answer the conversation ending in a new user turn.

        Failures never propagate: they end the turn with a user-facing message.
        The whole turn, tool rounds included, runs under ``turn_timeout_seconds``.
        """
        transcript = [to_model_message(message) for message in messages]
        rounds = 0
        try:
            client = self._get_client()
            try:
                async with asyncio.timeout(self._turn_timeout_seconds):
                    while True:
                        response = await self._call_model(client, transcript, audit, rounds)
                        tool_uses = response.tool_uses()
                        if not response.needs_tool_output or not tool_uses:
                            return ChatOutcome(text=response.text(), rounds=rounds)

                        if rounds >= self._max_tool_rounds:
                            raise ToolLoopExceededError(self._max_tool_rounds)
                        rounds += 1
                        results = await self._run_tools(tool_uses, audit, rounds)
                        transcript.append({"role": "assistant", "content": response.content})
                        transcript.append({"role": "user", "content": results})
            except TimeoutError as exc:
                raise ModelTimeoutError(self._turn_timeout_seconds) from exc
        except Exception as exc:
            kind = error_kind(exc)
            logger.warning("model.turn.error kind={} rounds={} error={!r}", kind, rounds, exc)
            await _record(audit, "turn.error", {"kind": kind, "error": str(exc), "rounds": rounds})
            return ChatOutcome(text=format_model_error(exc), rounds=rounds, error_kind=kind)

    def _get_client(self) -> ModelClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def _call_model(
        self,
        client: ModelClient,
        transcript: list[dict[str, Any]],
        audit: AuditLog | None,
        rounds: int,
    ) -> ModelResponse:
        request = ModelRequest(
            model=self._model,
            system=self.system_prompt,
            messages=list(transcript),
            tools=self._registry.model_tools(),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        await _record(audit, "model.request", request.to_payload())

        logger.info("model.call.start model={} round={} messages={}", self._model, rounds, len(transcript))
        try:
            async with asyncio.timeout(self._model_timeout_seconds):
                response = await client.create_message(request)
        except TimeoutError as exc:
            raise ModelTimeoutError(self._model_timeout_seconds) from exc

        await _record(audit, "model.response", response.to_payload())
        logger.info("model.call.end stop_reason={} blocks={}", response.stop_reason, len(response.content))
        return response

    async def _run_tools(
        self,
        tool_uses: list[dict[str, Any]],
        audit: AuditLog | None,
        round_number: int,
    ) -> list[dict[str, Any]]:
        outcomes = await asyncio.gather(
            *(self._registry.execute(str(block.get("name")), kwargs=block.get("input") or {}) for block in tool_uses)
        )
        blocks: list[dict[str, Any]] = []
        for tool_use, outcome in zip(tool_uses, outcomes, strict=True):
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": tool_use.get("id"),
                "content": json.dumps(outcome.to_dict(), ensure_ascii=False, default=str),
            }
            if not outcome.success:
                block["is_error"] = True
            blocks.append(block)

        await _record(audit, "tool.round", {"round": round_number, "tool_uses": tool_uses, "results": blocks})
        return blocks
