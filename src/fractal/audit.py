"""Full-fidelity audit log of model exchanges."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote

AUDIT_FILE_SUFFIX = ".jsonl"


@dataclass(frozen=True)
class AuditEntry:
    id: int
    kind: str
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def from_payload(payload: object) -> AuditEntry | None:
        if not isinstance(payload, dict):
            return None
        entry_id = payload.get("id")
        kind = payload.get("kind")
        entry_payload = payload.get("payload")
        if not isinstance(entry_id, int) or not isinstance(kind, str) or not isinstance(entry_payload, dict):
            return None
        timestamp = payload.get("timestamp", 0.0)
        return AuditEntry(entry_id, kind, dict(entry_payload), float(timestamp))


def _load_entries(path: Path) -> list[AuditEntry]:
    if not path.exists():
        return []
    entries: list[AuditEntry] = []
    with path.open("r", encoding="utf-8") as handle:
        for raw_line in handle:
            line = raw_line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                continue
            entry = AuditEntry.from_payload(payload)
            if entry is not None:
                entries.append(entry)
    return entries


class AuditLog:
    """Append-only log for one conversation, optionally mirrored to a JSONL file.

    The compact transcript keeps only user and assistant text; this log keeps
    every request, response and tool round verbatim.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._entries: list[AuditEntry] = _load_entries(path) if path is not None else []

    def append(self, kind: str, payload: dict[str, Any]) -> AuditEntry:
        with self._lock:
            next_id = self._entries[-1].id + 1 if self._entries else 1
            entry = AuditEntry(next_id, kind, payload)
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(entry.to_payload(), ensure_ascii=False, default=str) + "\n")
            self._entries.append(entry)
            return entry

    def entries(self, *, kinds: set[str] | None = None) -> list[AuditEntry]:
        with self._lock:
            if kinds is None:
                return list(self._entries)
            return [entry for entry in self._entries if entry.kind in kinds]

    def __len__(self) -> int:
        return len(self._entries)


class AuditStore:
    """Audit logs keyed by conversation id under one directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._logs: dict[str, AuditLog] = {}
        self._lock = threading.Lock()

    def log_for(self, conversation_id: str) -> AuditLog:
        with self._lock:
            if conversation_id not in self._logs:
                self._logs[conversation_id] = AuditLog(self._path(conversation_id))
            return self._logs[conversation_id]

    def delete(self, conversation_id: str) -> None:
        with self._lock:
            self._logs.pop(conversation_id, None)
            self._path(conversation_id).unlink(missing_ok=True)

    def _path(self, conversation_id: str) -> Path:
        return self.root / f"{quote(conversation_id, safe='')}{AUDIT_FILE_SUFFIX}"
