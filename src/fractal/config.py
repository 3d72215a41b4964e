"""Configuration management for Fractal."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL = "claude-sonnet-4-20250514"
HOME_DIR_NAME = ".fractal"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="FRACTAL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Model
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("FRACTAL_API_KEY", "ANTHROPIC_API_KEY"),
        description="Anthropic API key",
    )
    model: str = Field(default=DEFAULT_MODEL, description="Model identifier")
    max_tokens: int = Field(default=4096, ge=1, description="Maximum output tokens per model call")
    temperature: float = Field(default=1.0, ge=0.0, le=1.0, description="Sampling temperature")
    api_base: str | None = Field(default=None, description="Optional API base URL")

    # Loop control
    max_tool_rounds: int = Field(default=10, ge=1, description="Maximum tool execution rounds per turn")
    model_timeout_seconds: float | None = Field(default=120.0, description="Deadline for one model call")
    turn_timeout_seconds: float | None = Field(
        default=240.0, description="Deadline for a whole turn; keep it below the server handler deadline"
    )

    # Bridge
    rpc_timeout_seconds: float | None = Field(default=300.0, description="Client-side deadline per RPC call")
    rpc_handler_timeout_seconds: float | None = Field(default=280.0, description="Server-side handler deadline")

    system_prompt_path: Path | None = Field(default=None, description="Markdown file with system instructions")
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def resolved_api_key(self) -> str | None:
        if self.api_key is None:
            return None
        key = self.api_key.strip()
        return key or None

    def resolve_home(self, workspace: Path) -> Path:
        """Project-local directory holding conversations, transcript and UI state."""
        return workspace / HOME_DIR_NAME


def load_settings(workspace: Path | None = None, **overrides: object) -> Settings:
    """Load settings from the environment and ``.env`` of the workspace, if present."""
    env_file = (workspace / ".env") if workspace is not None else Path(".env")
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(_env_file=env_file if env_file.is_file() else None, **values)  # type: ignore[call-arg]
