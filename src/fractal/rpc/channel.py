"""In-memory duplex message channel between the UI and the host."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any, Protocol


class MessageChannel(Protocol):
    """Minimal async contract of the window-message transport."""

    async def post(self, message: Mapping[str, Any]) -> None: ...

    async def receive(self, timeout_seconds: float | None = None) -> Any | None: ...


class QueueChannel:
    """One endpoint of a channel pair.

    Messages are serialized to JSON on post, so the two sides never share
    mutable objects.
    """

    def __init__(self, inbound: asyncio.Queue[str], outbound: asyncio.Queue[str]) -> None:
        self._inbound = inbound
        self._outbound = outbound

    async def post(self, message: Mapping[str, Any]) -> None:
        await self._outbound.put(json.dumps(message, ensure_ascii=False))

    async def receive(self, timeout_seconds: float | None = None) -> Any | None:
        if timeout_seconds is None:
            raw = await self._inbound.get()
        else:
            try:
                raw = await asyncio.wait_for(self._inbound.get(), timeout=timeout_seconds)
            except TimeoutError:
                return None
        return json.loads(raw)


def create_channel_pair() -> tuple[QueueChannel, QueueChannel]:
    """Return ``(ui_end, host_end)`` connected back to back."""
    to_host: asyncio.Queue[str] = asyncio.Queue()
    to_ui: asyncio.Queue[str] = asyncio.Queue()
    return QueueChannel(inbound=to_ui, outbound=to_host), QueueChannel(inbound=to_host, outbound=to_ui)
