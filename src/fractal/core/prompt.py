"""System instructions for the tutor."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

DEFAULT_SYSTEM_PROMPT = """You are Fractal, a patient coding tutor for bootcamp students.

Ground every answer in what the student is actually looking at. You can call tools to
read files, search the project, inspect recent terminal output and see the editor state.
Prefer looking things up over guessing, and quote the relevant lines when you explain them.

Guide the student toward the fix instead of handing over complete solutions, unless they
explicitly ask for one."""

PROMPT_FILE_NAME = "system-prompt.md"


def load_system_prompt(path: Path | None, home: Path | None = None) -> str:
    """Read the system prompt from ``path``, then ``home``/system-prompt.md, else the default."""
    candidates = [candidate for candidate in (path, home / PROMPT_FILE_NAME if home else None) if candidate]
    for candidate in candidates:
        if not candidate.is_file():
            continue
        try:
            content = candidate.read_text(encoding="utf-8").strip()
        except OSError:
            logger.warning("Failed to load system prompt from {}", candidate)
            continue
        if content:
            return content
    return DEFAULT_SYSTEM_PROMPT
