from pathlib import Path

import pytest

from fractal.config import DEFAULT_MODEL, Settings, load_settings
from fractal.core.model_client import AnthropicModelClient, build_model_client
from fractal.core.prompt import DEFAULT_SYSTEM_PROMPT, load_system_prompt
from fractal.errors import ApiKeyNotConfiguredError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("FRACTAL_API_KEY", "ANTHROPIC_API_KEY", "FRACTAL_MODEL", "FRACTAL_MAX_TOOL_ROUNDS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path)

    assert settings.model == DEFAULT_MODEL
    assert settings.max_tokens == 4096
    assert settings.max_tool_rounds == 10
    assert settings.resolved_api_key is None
    assert settings.resolve_home(tmp_path) == tmp_path / ".fractal"


def test_api_key_falls_back_to_anthropic_variable(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    assert load_settings(tmp_path).resolved_api_key == "sk-ant-test"

    monkeypatch.setenv("FRACTAL_API_KEY", "sk-fractal")
    assert load_settings(tmp_path).resolved_api_key == "sk-fractal"


def test_workspace_env_file_and_overrides(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("FRACTAL_MODEL=claude-from-env\nFRACTAL_MAX_TOOL_ROUNDS=4\n", encoding="utf-8")

    settings = load_settings(tmp_path, model=None, max_tokens=512)

    assert settings.model == "claude-from-env"
    assert settings.max_tool_rounds == 4
    assert settings.max_tokens == 512


def test_blank_api_key_counts_as_missing() -> None:
    settings = Settings(api_key="   ")

    assert settings.resolved_api_key is None
    with pytest.raises(ApiKeyNotConfiguredError):
        build_model_client(settings)


def test_model_client_is_built_with_key() -> None:
    client = build_model_client(Settings(api_key="sk-ant-test"))
    assert isinstance(client, AnthropicModelClient)


def test_system_prompt_sources(tmp_path: Path) -> None:
    assert load_system_prompt(None, tmp_path) == DEFAULT_SYSTEM_PROMPT

    (tmp_path / "system-prompt.md").write_text("Home prompt\n", encoding="utf-8")
    assert load_system_prompt(None, tmp_path) == "Home prompt"

    explicit = tmp_path / "custom.md"
    explicit.write_text("Explicit prompt", encoding="utf-8")
    assert load_system_prompt(explicit, tmp_path) == "Explicit prompt"

    empty = tmp_path / "empty.md"
    empty.write_text("  \n", encoding="utf-8")
    assert load_system_prompt(empty, None) == DEFAULT_SYSTEM_PROMPT
