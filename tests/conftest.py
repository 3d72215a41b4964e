from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from fractal.core.model_client import ModelRequest, ModelResponse


class ScriptedModelClient:
    """Replays canned responses; the last one repeats once the script runs out."""

    def __init__(self, script: Sequence[ModelResponse | BaseException]) -> None:
        self._script = list(script)
        self.requests: list[ModelRequest] = []

    async def create_message(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, BaseException):
            raise item
        return item


def text_response(text: str) -> ModelResponse:
    return ModelResponse(stop_reason="end_turn", content=[{"type": "text", "text": text}])


def tool_use_response(*calls: tuple[str, str, dict]) -> ModelResponse:
    content: list[dict] = [{"type": "text", "text": "Let me check."}]
    for tool_id, name, tool_input in calls:
        content.append({"type": "tool_use", "id": tool_id, "name": name, "input": tool_input})
    return ModelResponse(stop_reason="tool_use", content=content)


@pytest.fixture
def scripted_client() -> type[ScriptedModelClient]:
    return ScriptedModelClient


@pytest.fixture
def responses() -> object:
    class _Responses:
        text = staticmethod(text_response)
        tool_use = staticmethod(tool_use_response)

    return _Responses()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("def greet(name):\n    return f'Hello {name}'\n", encoding="utf-8")
    (root / "README.md").write_text("# Demo\nRun greet() to say hello.\n", encoding="utf-8")
    (root / "node_modules" / "lib").mkdir(parents=True)
    (root / "node_modules" / "lib" / "index.js").write_text("greet()\n", encoding="utf-8")
    return root
