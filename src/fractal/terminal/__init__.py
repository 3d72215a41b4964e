"""Terminal activity tracking and output cleaning."""

from fractal.terminal.cleaner import clean_terminal_output, output_preview, truncate_output
from fractal.terminal.shell import run_tracked
from fractal.terminal.tracker import CommandExecution, OutputBuffer, TerminalTracker

__all__ = [
    "CommandExecution",
    "OutputBuffer",
    "TerminalTracker",
    "clean_terminal_output",
    "output_preview",
    "run_tracked",
    "truncate_output",
]
