"""Built-in workspace introspection tools."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from fractal.errors import ToolError
from fractal.terminal.cleaner import output_preview
from fractal.tools.registry import ToolRegistry
from fractal.workspace.snapshot import ContextSnapshotBuilder, active_editor_to_dict

DEFAULT_SEARCH_PATTERN = "**/*"
MAX_SEARCH_FILES = 1000
APPROX_CHARS_PER_LINE = 80
EXCLUDED_DIRS = frozenset({
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "dist",
    "build",
    "__pycache__",
    ".venv",
    "venv",
    ".fractal",
})

READ_FILE_DETAIL = (
    "Read the contents of a file in the workspace. Use this to examine code, configuration files, "
    "or any text file the student is working with."
)
SEARCH_PROJECT_DETAIL = (
    "Search for a text string across all files in the project. Use this to find where something is "
    "defined, used, or mentioned."
)
TERMINAL_OUTPUT_DETAIL = (
    "Get the output from recent terminal commands. Use this to see errors, test results, build output, "
    "or any other terminal activity."
)
EDITOR_STATE_DETAIL = (
    "Get the current state of the editor: which file is active, cursor position, open tabs. "
    "Use this to understand what the student is currently looking at."
)


class ReadFileInput(BaseModel):
    path: str = Field(
        ...,
        description='Path to the file, relative to workspace root (e.g., "src/index.ts" or "package.json")',
    )


class SearchProjectInput(BaseModel):
    query: str = Field(..., min_length=1, description="The text to search for")
    file_pattern: str | None = Field(
        default=None,
        description='Optional glob pattern to limit search (e.g., "**/*.ts" for TypeScript files only)',
    )
    max_results: int = Field(default=50, ge=1, description="Maximum number of results to return (default: 50)")


class TerminalOutputInput(BaseModel):
    max_executions: int = Field(
        default=5, ge=1, description="Number of recent command executions to retrieve (default: 5)"
    )
    max_lines_per_execution: int = Field(
        default=50, ge=1, description="Maximum lines of output per command (default: 50)"
    )


class EmptyInput(BaseModel):
    pass


def _resolve_path(workspace: Path, raw: str) -> Path:
    path = Path(raw).expanduser()
    if path.is_absolute():
        return path
    return workspace / path


def _is_excluded(relative: Path) -> bool:
    return any(part in EXCLUDED_DIRS for part in relative.parts[:-1])


def _candidate_files(workspace: Path, pattern: str) -> list[Path]:
    files: list[Path] = []
    for path in workspace.glob(pattern):
        relative = path.relative_to(workspace)
        if _is_excluded(relative) or not path.is_file():
            continue
        files.append(path)
        if len(files) >= MAX_SEARCH_FILES:
            break
    return files


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _format_duration(seconds: float | None) -> str | None:
    if seconds is None:
        return None
    return f"{seconds:.2f}s"


def register_builtin_tools(registry: ToolRegistry, *, snapshot: ContextSnapshotBuilder) -> None:
    """Register the workspace introspection tools."""

    register = registry.register

    def require_workspace() -> Path:
        root = snapshot.host.workspace_root()
        if root is None:
            raise ToolError("No workspace folder open")
        return root

    @register(
        name="read_file",
        short_description="Read a workspace file",
        detail=READ_FILE_DETAIL,
        model=ReadFileInput,
    )
    async def read_file(params: ReadFileInput) -> dict[str, Any]:
        workspace = require_workspace()
        file_path = _resolve_path(workspace, params.path)
        try:
            content = await asyncio.to_thread(_read_text, file_path)
        except (OSError, UnicodeDecodeError) as exc:
            raise ToolError(f"Failed to read file: {exc}") from exc
        return {
            "path": params.path,
            "content": content,
            "lines": len(content.split("\n")),
        }

    @register(
        name="search_project",
        short_description="Case-insensitive text search across the project",
        detail=SEARCH_PROJECT_DETAIL,
        model=SearchProjectInput,
    )
    async def search_project(params: SearchProjectInput) -> dict[str, Any]:
        workspace = require_workspace()
        needle = params.query.lower()
        results: list[dict[str, Any]] = []
        try:
            files = await asyncio.to_thread(_candidate_files, workspace, params.file_pattern or DEFAULT_SEARCH_PATTERN)
        except (OSError, ValueError, NotImplementedError) as exc:
            raise ToolError(f"Search failed: {exc}") from exc

        for file_path in files:
            if len(results) >= params.max_results:
                break
            try:
                text = await asyncio.to_thread(_read_text, file_path)
            except (OSError, UnicodeDecodeError):
                continue

            for number, line in enumerate(text.split("\n"), start=1):
                index = line.lower().find(needle)
                if index == -1:
                    continue
                results.append({
                    "file": file_path.relative_to(workspace).as_posix(),
                    "line": number,
                    "column": index + 1,
                    "text": line.strip(),
                })
                if len(results) >= params.max_results:
                    break

        return {
            "searchTerm": params.query,
            "results": results,
            "totalMatches": len(results),
            "maxResultsReached": len(results) >= params.max_results,
        }

    @register(
        name="get_terminal_output",
        short_description="Recent terminal commands and their output",
        detail=TERMINAL_OUTPUT_DETAIL,
        model=TerminalOutputInput,
    )
    def get_terminal_output(params: TerminalOutputInput) -> dict[str, Any]:
        terminal = snapshot.terminal()
        if not terminal.shell_integration_available:
            return {
                "shellIntegrationAvailable": False,
                "executions": [],
                "runningCommands": [],
                "note": " ".join(terminal.limitations),
            }

        max_lines = params.max_lines_per_execution
        executions = []
        for execution in terminal.recent_executions[-params.max_executions :]:
            raw = execution.output
            preview = output_preview(raw, False, max_lines * APPROX_CHARS_PER_LINE)
            executions.append({
                "command": execution.command_line,
                "cwd": execution.cwd,
                "exitCode": execution.exit_code,
                "status": execution.status,
                "duration": _format_duration(execution.duration_seconds),
                "output": "\n".join(preview.split("\n")[:max_lines]),
                "outputTruncated": len(raw.split("\n")) > max_lines,
            })

        return {
            "shellIntegrationAvailable": True,
            "executions": executions,
            "runningCommands": [
                {
                    "command": execution.command_line,
                    "cwd": execution.cwd,
                    "elapsedSeconds": snapshot.tracker.elapsed_seconds(execution),
                    "output": output_preview(execution.output, True, max_lines * APPROX_CHARS_PER_LINE),
                }
                for execution in terminal.running_commands
            ],
            "limitations": terminal.limitations,
        }

    @register(
        name="get_editor_state",
        short_description="Active file, cursor and open tabs",
        detail=EDITOR_STATE_DETAIL,
        model=EmptyInput,
    )
    def get_editor_state(_params: EmptyInput) -> dict[str, Any]:
        editor = snapshot.editor()
        return {
            "activeFile": active_editor_to_dict(editor.active_file) if editor.active_file else None,
            "openTabs": [{"path": tab.path, "isDirty": tab.is_dirty} for tab in editor.open_tabs],
            "openTabsCount": len(editor.open_tabs),
        }
