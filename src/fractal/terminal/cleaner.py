"""Clean raw terminal output for model consumption."""

from __future__ import annotations

import re

# Operating system commands, e.g. shell integration markers like ESC ]633;C BEL.
OSC_BEL_RE = re.compile(r"\x1b\][^\x07]*\x07")
OSC_ST_RE = re.compile(r"\x1b\][^\x1b]*\x1b\\")
# Control sequence introducers: colors, cursor movement, formatting.
CSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")
CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
BLANK_RUN_RE = re.compile(r"\n{3,}")

ELLIPSIS = "…"
TRUNCATION_MARK = "..."
NEWLINE_CUT_RATIO = 0.7


def clean_terminal_output(raw: str) -> str:
    """Strip escape sequences and control characters, normalize whitespace."""
    cleaned = OSC_BEL_RE.sub("", raw)
    cleaned = OSC_ST_RE.sub("", cleaned)
    cleaned = CSI_RE.sub("", cleaned)
    cleaned = CONTROL_RE.sub("", cleaned)
    cleaned = "\n".join(line.rstrip() for line in cleaned.split("\n"))
    cleaned = BLANK_RUN_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def truncate_output(text: str, max_length: int = 500) -> str:
    """Keep the head of ``text``, cutting at a line break near the end of the window if possible."""
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    last_newline = truncated.rfind("\n")
    if last_newline > max_length * NEWLINE_CUT_RATIO:
        return truncated[:last_newline] + "\n" + TRUNCATION_MARK
    return truncated + TRUNCATION_MARK


def output_preview(output: str, is_running: bool, max_length: int = 200) -> str:
    """Preview of command output.

    Running commands show the tail (most recent output), completed commands
    show the head.
    """
    cleaned = clean_terminal_output(output)
    if not cleaned:
        return ""

    if is_running:
        if len(cleaned) <= max_length:
            return cleaned
        return ELLIPSIS + cleaned[-max_length:]
    return truncate_output(cleaned, max_length)
