"""Runtime logging helpers."""

from __future__ import annotations

import os
import sys
from contextvars import ContextVar, Token
from logging import Handler
from pathlib import Path
from typing import Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

DEFAULT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<6} | {name}:{function}:{line} | {extra[conversation]} | {message}"
)
# The chat console only surfaces problems; everything else goes to the log file.
CHAT_CONSOLE_LEVEL = "WARNING"
LOG_FILE_ROTATION = "5 MB"

_CONFIGURED_PROFILE: LogProfile | None = None
_conversation_context: ContextVar[str] = ContextVar("conversation", default="-")


def current_conversation() -> str:
    """Conversation id bound to the running task, or ``-``."""
    return _conversation_context.get()


def bind_conversation(conversation_id: str) -> Token[str]:
    return _conversation_context.set(conversation_id)


def reset_conversation(token: Token[str]) -> None:
    _conversation_context.reset(token)


def _inject_context(record: loguru.Record) -> None:
    record["extra"]["conversation"] = current_conversation()


def _build_chat_handler() -> Handler:
    return RichHandler(
        console=get_console(),
        show_level=True,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )


def configure_logging(
    *,
    profile: LogProfile = "default",
    level: str | None = None,
    log_file: Path | None = None,
) -> None:
    """Configure process-level logging once per profile.

    ``default`` writes everything at ``level`` to stderr. ``chat`` keeps the
    terminal quiet below warnings and, when ``log_file`` is given, records
    the full stream there.
    """
    global _CONFIGURED_PROFILE
    if profile == _CONFIGURED_PROFILE:
        return

    level = (level or os.getenv("FRACTAL_LOG_LEVEL", "INFO")).upper()
    logger.remove()
    logger.configure(patcher=_inject_context)
    if profile == "chat":
        logger.add(
            _build_chat_handler(),
            level=CHAT_CONSOLE_LEVEL,
            format="{message}",
            backtrace=False,
            diagnose=False,
        )
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                log_file,
                level=level,
                format=DEFAULT_FORMAT,
                rotation=LOG_FILE_ROTATION,
                encoding="utf-8",
                backtrace=False,
                diagnose=False,
            )
    else:
        logger.add(
            sys.stderr,
            level=level,
            format=DEFAULT_FORMAT,
            backtrace=False,
            diagnose=False,
        )
    _CONFIGURED_PROFILE = profile
