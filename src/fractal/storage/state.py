"""UI state and transcript files under the project-local home directory."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from fractal.errors import StorageError
from fractal.storage.models import Conversation, UIState, utc_timestamp

STATE_FILE = "state.json"
TRANSCRIPT_FILE = "transcript.json"


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8")


class UIStateStore:
    def __init__(self, home: Path) -> None:
        self.path = home / STATE_FILE

    async def save(self, state: UIState) -> None:
        try:
            await asyncio.to_thread(_write_json, self.path, state.to_json_dict())
        except OSError as exc:
            raise StorageError("Failed to save UI state") from exc

    async def load(self) -> UIState | None:
        """Saved state, or None when missing or unreadable."""
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            return UIState.model_validate_json(raw)
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as exc:
            logger.warning("storage.state.unreadable path={} error={}", self.path, exc)
            return None


class TranscriptWriter:
    """Exports one conversation, overwriting the previous export."""

    def __init__(self, home: Path) -> None:
        self.path = home / TRANSCRIPT_FILE

    async def write(
        self,
        conversation: Conversation,
        *,
        system_prompt: str,
        exchanges: list[dict[str, Any]] | None = None,
    ) -> Path:
        transcript = {
            "conversationId": conversation.id,
            "createdAt": conversation.created_at,
            "savedAt": utc_timestamp(),
            "systemPrompt": system_prompt,
            "messages": [message.to_json_dict() for message in conversation.messages],
            "exchanges": exchanges or [],
        }
        try:
            await asyncio.to_thread(_write_json, self.path, transcript)
        except OSError as exc:
            raise StorageError("Failed to save transcript") from exc
        logger.info("storage.transcript.saved id={} path={}", conversation.id, self.path)
        return self.path
