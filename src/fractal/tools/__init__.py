"""Tools package for Fractal."""

from fractal.tools.builtin import register_builtin_tools
from fractal.tools.registry import ToolDescriptor, ToolRegistry
from fractal.tools.types import ToolResult

__all__ = [
    "ToolDescriptor",
    "ToolRegistry",
    "ToolResult",
    "register_builtin_tools",
]
