"""Registry of tools the model may call."""

from __future__ import annotations

import builtins
import inspect
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError

from fractal.errors import ToolError
from fractal.tools.types import ToolResult

ToolHandler = Callable[[Any], Any | Awaitable[Any]]


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text

    available = width - len(placeholder)
    if available <= 0:
        return placeholder

    return text[:available] + placeholder


def _strip_titles(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {
            key: _strip_titles(value)
            for key, value in schema.items()
            if not (key == "title" and isinstance(value, str))
        }
    if isinstance(schema, list):
        return [_strip_titles(item) for item in schema]
    return schema


@dataclass(frozen=True)
class ToolDescriptor:
    """Tool metadata and runtime handle."""

    name: str
    short_description: str
    detail: str
    model: type[BaseModel]
    handler: ToolHandler

    def input_schema(self) -> dict[str, Any]:
        schema = _strip_titles(self.model.model_json_schema())
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        return schema

    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.detail or self.short_description,
            "input_schema": self.input_schema(),
        }


class ToolRegistry:
    """Registry for the tools the model may call.

    Execution never raises: every failure comes back as a failed
    :class:`ToolResult` so the model can decide how to proceed.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}

    def register(
        self,
        *,
        name: str,
        short_description: str,
        model: type[BaseModel],
        detail: str = "",
    ) -> Callable[[ToolHandler], ToolHandler]:
        def decorator(handler: ToolHandler) -> ToolHandler:
            if name in self._tools:
                raise ValueError(f"Duplicate tool name: {name}")
            self._tools[name] = ToolDescriptor(
                name=name,
                short_description=short_description,
                detail=detail,
                model=model,
                handler=handler,
            )
            return handler

        return decorator

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def descriptors(self) -> builtins.list[ToolDescriptor]:
        return sorted(self._tools.values(), key=lambda item: item.name)

    def model_tools(self) -> builtins.list[dict[str, Any]]:
        """Tool declarations in the shape the Messages API expects."""
        return [descriptor.schema() for descriptor in self.descriptors()]

    def _log_tool_call(self, name: str, kwargs: dict[str, Any]) -> None:
        params: list[str] = []
        for key, value in kwargs.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            value = _shorten_text(rendered, width=30, placeholder="...")
            if value.startswith('"') and not value.endswith('"'):
                value = value + '"'
            params.append(f"{key}={value}")
        logger.info("tool.call.start name={} {{ {} }}", name, ", ".join(params))

    async def execute(self, name: str, *, kwargs: dict[str, Any] | None = None) -> ToolResult:
        descriptor = self.get(name)
        if descriptor is None:
            return ToolResult.fail(f"Unknown tool: {name}")

        kwargs = kwargs or {}
        self._log_tool_call(name, kwargs)
        start = time.monotonic()
        try:
            params = descriptor.model.model_validate(kwargs)
            data = descriptor.handler(params)
            if inspect.isawaitable(data):
                data = await data
            return ToolResult.ok(data)
        except ValidationError as exc:
            return ToolResult.fail(f"Invalid input for {name}: {exc}")
        except ToolError as exc:
            return ToolResult.fail(str(exc))
        except Exception as exc:
            logger.exception("tool.call.error name={}", name)
            return ToolResult.fail(f"{name} failed: {exc}")
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", name, duration * 1000)
