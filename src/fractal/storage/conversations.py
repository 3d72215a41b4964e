"""Conversation storage: one JSON file per conversation."""

from __future__ import annotations

import asyncio
import builtins
import json
import re
import uuid
from datetime import datetime
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from fractal.errors import ConversationNotFoundError, StorageError
from fractal.storage.models import Conversation, ConversationMetadata

CONVERSATION_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def conversation_label(created_at: str) -> str:
    """Short local-time label such as ``Oct 18, 3:04 PM``."""
    try:
        moment = datetime.fromisoformat(created_at).astimezone()
    except ValueError:
        return created_at
    hour = moment.hour % 12 or 12
    return f"{moment:%b} {moment.day}, {hour}:{moment:%M} {moment:%p}"


def _sort_key(metadata: ConversationMetadata) -> float:
    try:
        return datetime.fromisoformat(metadata.created_at).timestamp()
    except ValueError:
        return 0.0


class ConversationStore:
    """Keyed JSON file storage under ``<home>/conversations``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, conversation_id: str) -> Path | None:
        if not CONVERSATION_ID_RE.fullmatch(conversation_id):
            return None
        return self.root / f"{conversation_id}.json"

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError("Failed to initialize conversation storage") from exc

    async def create(self) -> Conversation:
        conversation = Conversation(id=str(uuid.uuid4()))
        await self.save(conversation)
        return conversation

    async def save(self, conversation: Conversation) -> None:
        path = self._path(conversation.id)
        if path is None:
            raise StorageError("Failed to save conversation")
        payload = json.dumps(conversation.to_json_dict(), indent=2, ensure_ascii=False)
        try:
            await asyncio.to_thread(self._write, path, payload)
        except OSError as exc:
            logger.error("storage.save.error id={} error={}", conversation.id, exc)
            raise StorageError("Failed to save conversation") from exc

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")

    async def load(self, conversation_id: str) -> Conversation | None:
        path = self._path(conversation_id)
        if path is None:
            return None
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return Conversation.model_validate_json(raw)
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as exc:
            logger.warning("storage.load.error id={} error={}", conversation_id, exc)
            return None

    async def get(self, conversation_id: str) -> Conversation:
        conversation = await self.load(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def list(self) -> builtins.list[ConversationMetadata]:
        """Stored conversations, newest first."""
        try:
            files = await asyncio.to_thread(lambda: sorted(self.root.glob("*.json")))
        except OSError as exc:
            logger.warning("storage.list.error error={}", exc)
            return []

        conversations: builtins.list[ConversationMetadata] = []
        for file in files:
            conversation = await self.load(file.stem)
            if conversation is None:
                continue
            conversations.append(
                ConversationMetadata(
                    id=conversation.id,
                    created_at=conversation.created_at,
                    label=conversation_label(conversation.created_at),
                )
            )
        conversations.sort(key=_sort_key, reverse=True)
        return conversations

    async def delete(self, conversation_id: str) -> None:
        path = self._path(conversation_id)
        try:
            if path is None:
                raise FileNotFoundError(conversation_id)
            await asyncio.to_thread(path.unlink)
        except OSError as exc:
            logger.error("storage.delete.error id={} error={}", conversation_id, exc)
            raise StorageError("Failed to delete conversation") from exc
