"""Command line entry point for Fractal."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from fractal.app.runtime import AppRuntime
from fractal.config import load_settings
from fractal.errors import FractalError, RpcError
from fractal.logging_utils import configure_logging
from fractal.rpc.client import RpcClient
from fractal.storage.models import UIState
from fractal.terminal.cleaner import clean_terminal_output
from fractal.terminal.shell import run_tracked

SHELL_PREFIX = ","
LOG_FILE = Path("logs") / "fractal.log"
HISTORY_FILE = "history"
QUIT_COMMANDS = frozenset({"/quit", "/exit", "/q"})
HELP_TEXT = (
    "Type a question to ask the tutor.\n"
    ",<command>    run a shell command; its output becomes visible to the tutor\n"
    "/new          start a new conversation\n"
    "/list         list conversations\n"
    "/load ID      switch to a stored conversation\n"
    "/transcript   export the current conversation to .fractal/transcript.json\n"
    "/quit         leave"
)

app = typer.Typer(
    name="fractal",
    help="A coding tutor grounded in your workspace.",
    add_completion=False,
    rich_markup_mode="rich",
)


def build_runtime(workspace: Path, *, model: str | None = None, max_tokens: int | None = None) -> AppRuntime:
    settings = load_settings(workspace, model=model, max_tokens=max_tokens)
    runtime = AppRuntime(workspace, settings)
    configure_logging(profile="chat", level=settings.log_level, log_file=runtime.home / LOG_FILE)
    return runtime


def _load_runtime(workspace: Path | None, **overrides: object) -> AppRuntime:
    try:
        return build_runtime(workspace or Path.cwd(), **overrides)  # type: ignore[arg-type]
    except FractalError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


class InteractiveChat:
    """Terminal front end speaking to the host over the RPC bridge."""

    def __init__(self, runtime: AppRuntime, *, conversation_id: str | None = None, console: Console | None = None) -> None:
        self.runtime = runtime
        self.console = console or Console()
        self.conversation_id = conversation_id

    async def run(self) -> None:
        client = await self.runtime.connect()
        try:
            await self._restore(client)
            session: PromptSession[str] = PromptSession(history=FileHistory(str(self.runtime.home / HISTORY_FILE)))
            self.console.print(f"[bold]Fractal[/bold] conversation [cyan]{self.conversation_id}[/cyan]")
            self.console.print(HELP_TEXT, style="dim")
            while True:
                try:
                    with patch_stdout(raw=True):
                        line = await session.prompt_async("> ")
                except (EOFError, KeyboardInterrupt):
                    break
                if not await self.handle_line(client, line.strip()):
                    break
            await client.save_ui_state(UIState(current_conversation_id=self.conversation_id))
        finally:
            await self.runtime.close()

    async def _restore(self, client: RpcClient) -> None:
        if self.conversation_id is None:
            state = await client.load_ui_state()
            if state is not None and state.current_conversation_id:
                self.conversation_id = state.current_conversation_id
        if self.conversation_id is not None:
            try:
                conversation = await client.load_conversation(self.conversation_id)
            except RpcError:
                self.conversation_id = None
            else:
                for message in conversation.messages[-4:]:
                    self._render(message.role, message.content)
        if self.conversation_id is None:
            self.conversation_id = await client.create_conversation()

    async def handle_line(self, client: RpcClient, line: str) -> bool:
        """Process one input line; returns False when the session should end."""
        if not line:
            return True
        if line in QUIT_COMMANDS:
            return False
        try:
            if line.startswith(SHELL_PREFIX):
                await self._run_shell(line[len(SHELL_PREFIX) :].strip())
            elif line == "/new":
                self.conversation_id = await client.create_conversation()
                self.console.print(f"new conversation [cyan]{self.conversation_id}[/cyan]")
            elif line == "/list":
                self.console.print(_conversation_table(await client.list_conversations()))
            elif line.startswith("/load "):
                conversation = await client.load_conversation(line.removeprefix("/load ").strip())
                self.conversation_id = conversation.id
                for message in conversation.messages:
                    self._render(message.role, message.content)
            elif line == "/transcript":
                assert self.conversation_id is not None
                await client.save_transcript(self.conversation_id)
                self.console.print("transcript saved to .fractal/transcript.json", style="dim")
            else:
                assert self.conversation_id is not None
                with self.console.status("thinking..."):
                    answer = await client.send_message(self.conversation_id, line)
                self._render("assistant", answer)
        except (RpcError, OSError) as exc:
            self.console.print(f"error: {exc}", style="red")
        return True

    async def _run_shell(self, command: str) -> None:
        if not command:
            return
        exit_code = await run_tracked(self.runtime.tracker, command, self.runtime.workspace)
        recent = self.runtime.tracker.recent()
        if recent:
            self.console.print(clean_terminal_output(recent[-1].output), markup=False, highlight=False)
        self.console.print(f"exit={exit_code}", style="dim")

    def _render(self, role: str, content: object) -> None:
        if not isinstance(content, str):
            return
        if role == "assistant":
            self.console.print(Markdown(content))
        else:
            self.console.print(f"[bold green]>[/bold green] {escape(content)}")


def _conversation_table(items: list) -> Table:
    table = Table("id", "created")
    for item in items:
        table.add_row(item.id, item.label)
    return table


@app.command()
def chat(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
    conversation: str | None = typer.Option(None, "--conversation", "-c", help="Conversation id to resume"),
    model: str | None = typer.Option(None, "--model", help="Model identifier"),
    max_tokens: int | None = typer.Option(None, "--max-tokens", help="Maximum output tokens"),
) -> None:
    """Start an interactive tutoring session."""
    runtime = _load_runtime(workspace, model=model, max_tokens=max_tokens)
    asyncio.run(InteractiveChat(runtime, conversation_id=conversation).run())


@app.command()
def conversations(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
) -> None:
    """List stored conversations, newest first."""
    runtime = _load_runtime(workspace)

    async def _list() -> list:
        async with runtime as client:
            return await client.list_conversations()

    items = asyncio.run(_list())
    if not items:
        typer.echo("(no conversations)")
        return
    for item in items:
        typer.echo(f"{item.id}  {item.label}")


@app.command()
def context(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
) -> None:
    """Print everything the tools can see, as JSON."""
    runtime = _load_runtime(workspace)
    typer.echo(json.dumps(runtime.snapshot.snapshot(), indent=2))


@app.command()
def transcript(
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
) -> None:
    """Export a conversation to .fractal/transcript.json."""
    runtime = _load_runtime(workspace)

    async def _save() -> None:
        async with runtime as client:
            await client.save_transcript(conversation_id)

    try:
        asyncio.run(_save())
    except RpcError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1) from exc
    typer.echo(str(runtime.transcripts.path))
