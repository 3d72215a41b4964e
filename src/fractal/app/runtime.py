"""Application runtime: wires storage, tools, orchestrator and the bridge."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from pathlib import Path

from fractal.audit import AuditStore
from fractal.config import Settings
from fractal.core.model_client import ModelClient, build_model_client
from fractal.core.orchestrator import ConversationOrchestrator
from fractal.core.prompt import load_system_prompt
from fractal.errors import WorkspaceNotFoundError
from fractal.rpc.channel import create_channel_pair
from fractal.rpc.client import RpcClient
from fractal.rpc.server import RpcServer
from fractal.storage import ConversationStore, TranscriptWriter, UIStateStore
from fractal.terminal.tracker import TerminalTracker
from fractal.tools import ToolRegistry, register_builtin_tools
from fractal.workspace.host import EditorHost, StaticEditorHost
from fractal.workspace.snapshot import ContextSnapshotBuilder


class AppRuntime:
    """One host session: exactly one UI endpoint talks to one server."""

    def __init__(
        self,
        workspace: Path,
        settings: Settings,
        *,
        host: EditorHost | None = None,
        tracker: TerminalTracker | None = None,
        model_client: ModelClient | None = None,
    ) -> None:
        if not workspace.is_dir():
            raise WorkspaceNotFoundError(f"Workspace not found: {workspace}")
        self.workspace = workspace.resolve()
        self.settings = settings
        self.home = settings.resolve_home(self.workspace)
        self.tracker = tracker or TerminalTracker()
        self.host = host or StaticEditorHost(root=self.workspace)
        self.snapshot = ContextSnapshotBuilder(self.host, self.tracker)

        self.registry = ToolRegistry()
        register_builtin_tools(self.registry, snapshot=self.snapshot)

        self.orchestrator = ConversationOrchestrator(
            registry=self.registry,
            client_factory=(lambda: model_client) if model_client is not None else self._build_model_client,
            system_prompt=load_system_prompt(settings.system_prompt_path, self.home),
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            max_tool_rounds=settings.max_tool_rounds,
            model_timeout_seconds=settings.model_timeout_seconds,
            turn_timeout_seconds=settings.turn_timeout_seconds,
        )
        self.conversations = ConversationStore(self.home / "conversations")
        self.audits = AuditStore(self.home / "audit")
        self.ui_state = UIStateStore(self.home)
        self.transcripts = TranscriptWriter(self.home)

        self._server: RpcServer | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._client: RpcClient | None = None

    def _build_model_client(self) -> ModelClient:
        return build_model_client(self.settings)

    async def connect(self) -> RpcClient:
        """Start the server and return the single UI-side client."""
        if self._client is not None:
            return self._client

        await self.conversations.initialize()
        ui_end, host_end = create_channel_pair()
        self._server = RpcServer(
            host_end,
            conversations=self.conversations,
            orchestrator=self.orchestrator,
            ui_state=self.ui_state,
            transcripts=self.transcripts,
            audits=self.audits,
            handler_timeout_seconds=self.settings.rpc_handler_timeout_seconds,
        )
        self._serve_task = asyncio.create_task(self._server.serve())
        self._client = RpcClient(ui_end, default_timeout_seconds=self.settings.rpc_timeout_seconds)
        self._client.start()
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        if self._serve_task is not None:
            self._serve_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._serve_task
            self._serve_task = None
        if self._server is not None:
            await self._server.close()
            self._server = None

    async def __aenter__(self) -> RpcClient:
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
