"""Point-in-time view of editor, workspace and terminal state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fractal.terminal.tracker import CommandExecution, TerminalTracker
from fractal.workspace.host import ActiveEditor, EditorHost, OpenTab

SHELL_INTEGRATION_MISSING = (
    "Shell integration not detected - terminal output unavailable",
    "Enable shell integration in your shell (zsh/bash/fish/pwsh)",
    "See: https://code.visualstudio.com/docs/terminal/shell-integration",
)
SHELL_INTEGRATION_SCOPE = (
    "Only commands run after the session started are captured",
    "Historical scrollback from before that is not available",
)


@dataclass(frozen=True)
class EditorContext:
    active_file: ActiveEditor | None
    open_tabs: list[OpenTab]


@dataclass(frozen=True)
class UnsavedChange:
    path: str
    change_count: int


@dataclass(frozen=True)
class WorkspaceContext:
    root_path: str | None
    recent_files: list[str] = field(default_factory=list)
    unsaved_changes: list[UnsavedChange] = field(default_factory=list)


@dataclass(frozen=True)
class TerminalContext:
    has_active_terminal: bool
    terminal_count: int
    shell_integration_available: bool
    running_commands: list[CommandExecution]
    recent_executions: list[CommandExecution]
    limitations: list[str]


class ContextSnapshotBuilder:
    """Assembles context from the editor host and the terminal tracker."""

    def __init__(self, host: EditorHost, tracker: TerminalTracker) -> None:
        self.host = host
        self.tracker = tracker

    def editor(self) -> EditorContext:
        return EditorContext(active_file=self.host.active_editor(), open_tabs=self.host.open_tabs())

    def workspace(self) -> WorkspaceContext:
        root = self.host.workspace_root()
        documents = [doc for doc in self.host.open_documents() if not doc.is_untitled]
        return WorkspaceContext(
            root_path=str(root) if root is not None else None,
            recent_files=[doc.path for doc in documents],
            # Document version is the closest available proxy for an edit count.
            unsaved_changes=[UnsavedChange(doc.path, doc.version) for doc in documents if doc.is_dirty],
        )

    def terminal(self) -> TerminalContext:
        info = self.host.terminals()
        available = info.shell_integration or self.tracker.shell_integration_available
        limitations = SHELL_INTEGRATION_SCOPE if available else SHELL_INTEGRATION_MISSING
        return TerminalContext(
            has_active_terminal=info.has_active,
            terminal_count=info.count,
            shell_integration_available=available,
            running_commands=self.tracker.running(),
            recent_executions=self.tracker.recent(),
            limitations=list(limitations),
        )

    def snapshot(self) -> dict[str, Any]:
        """All context in one JSON-ready document."""
        return {
            "editor": editor_to_dict(self.editor()),
            "workspace": workspace_to_dict(self.workspace()),
            "terminal": terminal_to_dict(self.terminal()),
            "timestamp": datetime.now(UTC).isoformat(),
        }


def active_editor_to_dict(editor: ActiveEditor) -> dict[str, Any]:
    visible = editor.visible_range
    return {
        "path": editor.path,
        "language": editor.language,
        "cursor": {"line": editor.cursor.line, "column": editor.cursor.column},
        "selection": editor.selection,
        "visibleRange": {"start": visible.start, "end": visible.end} if visible else None,
    }


def editor_to_dict(context: EditorContext) -> dict[str, Any]:
    return {
        "activeFile": active_editor_to_dict(context.active_file) if context.active_file else None,
        "openTabs": [{"path": tab.path, "isDirty": tab.is_dirty} for tab in context.open_tabs],
    }


def workspace_to_dict(context: WorkspaceContext) -> dict[str, Any]:
    return {
        "rootPath": context.root_path,
        "recentFiles": list(context.recent_files),
        "unsavedChanges": [
            {"path": change.path, "changeCount": change.change_count} for change in context.unsaved_changes
        ],
    }


def execution_to_dict(execution: CommandExecution) -> dict[str, Any]:
    return {
        "commandLine": execution.command_line,
        "cwd": execution.cwd,
        "status": execution.status,
        "exitCode": execution.exit_code,
        "startTime": execution.start_time.isoformat(),
        "endTime": execution.end_time.isoformat() if execution.end_time else None,
        "output": execution.output,
    }


def terminal_to_dict(context: TerminalContext) -> dict[str, Any]:
    return {
        "hasActiveTerminal": context.has_active_terminal,
        "terminalCount": context.terminal_count,
        "shellIntegrationAvailable": context.shell_integration_available,
        "runningCommands": [execution_to_dict(item) for item in context.running_commands],
        "recentExecutions": [execution_to_dict(item) for item in context.recent_executions],
        "limitations": list(context.limitations),
    }
