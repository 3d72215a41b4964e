"""Editor host collaborator.

The editor (active document, tabs, terminals) is owned by the host
environment. Fractal only queries it through :class:`EditorHost`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class CursorPosition:
    line: int
    column: int


@dataclass(frozen=True)
class LineRange:
    start: int
    end: int


@dataclass(frozen=True)
class ActiveEditor:
    """Active text editor, with 1-based lines and columns."""

    path: str
    language: str
    cursor: CursorPosition
    selection: str | None = None
    visible_range: LineRange | None = None


@dataclass(frozen=True)
class OpenTab:
    path: str
    is_dirty: bool = False


@dataclass(frozen=True)
class OpenDocument:
    path: str
    is_dirty: bool = False
    is_untitled: bool = False
    version: int = 1


@dataclass(frozen=True)
class TerminalInfo:
    count: int = 0
    has_active: bool = False
    shell_integration: bool = False


class EditorHost(Protocol):
    """Queries answered by the host environment."""

    def workspace_root(self) -> Path | None: ...

    def active_editor(self) -> ActiveEditor | None: ...

    def open_tabs(self) -> list[OpenTab]: ...

    def open_documents(self) -> list[OpenDocument]: ...

    def terminals(self) -> TerminalInfo: ...


@dataclass
class StaticEditorHost:
    """Host state supplied by the caller, e.g. a CLI session or a test."""

    root: Path | None = None
    editor: ActiveEditor | None = None
    tabs: list[OpenTab] = field(default_factory=list)
    documents: list[OpenDocument] = field(default_factory=list)
    terminal: TerminalInfo = field(default_factory=TerminalInfo)

    def workspace_root(self) -> Path | None:
        return self.root

    def active_editor(self) -> ActiveEditor | None:
        return self.editor

    def open_tabs(self) -> list[OpenTab]:
        return list(self.tabs)

    def open_documents(self) -> list[OpenDocument]:
        return list(self.documents)

    def terminals(self) -> TerminalInfo:
        return self.terminal
