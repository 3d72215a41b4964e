"""Run shell commands while feeding the terminal tracker."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import suppress
from pathlib import Path

from fractal.terminal.tracker import TerminalTracker

READ_CHUNK_SIZE = 4096


async def _read_chunks(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    while chunk := await stream.read(READ_CHUNK_SIZE):
        yield chunk.decode("utf-8", errors="replace")


async def run_tracked(tracker: TerminalTracker, command: str, cwd: Path | None = None) -> int:
    """Execute ``command`` in a shell, recording it as a terminal execution.

    Stdout and stderr are merged, as they would be in an interactive terminal.
    The execution always ends: a failed spawn or a cancelled run is recorded
    with no exit code, and a process still alive is killed.
    """
    tracker.shell_integration_available = True
    execution_id = tracker.start(command, str(cwd) if cwd is not None else None)
    process: asyncio.subprocess.Process | None = None
    exit_code: int | None = None
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        if process.stdout is not None:
            await tracker.capture(execution_id, _read_chunks(process.stdout))
        exit_code = await process.wait()
        return exit_code
    finally:
        if process is not None and process.returncode is None:
            with suppress(ProcessLookupError):
                process.kill()
        tracker.end(command, exit_code)
