"""Editor host queries and context snapshots."""

from fractal.workspace.host import (
    ActiveEditor,
    CursorPosition,
    EditorHost,
    LineRange,
    OpenDocument,
    OpenTab,
    StaticEditorHost,
    TerminalInfo,
)
from fractal.workspace.snapshot import ContextSnapshotBuilder, EditorContext, TerminalContext, WorkspaceContext

__all__ = [
    "ActiveEditor",
    "ContextSnapshotBuilder",
    "CursorPosition",
    "EditorContext",
    "EditorHost",
    "LineRange",
    "OpenDocument",
    "OpenTab",
    "StaticEditorHost",
    "TerminalContext",
    "TerminalInfo",
    "WorkspaceContext",
]
