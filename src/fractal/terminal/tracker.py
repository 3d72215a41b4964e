"""Terminal activity tracking."""

from __future__ import annotations

from collections import deque
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from loguru import logger

MAX_RECENT_EXECUTIONS = 20

ExecutionStatus = Literal["running", "completed"]


class OutputBuffer:
    """Append-only accumulator for one execution's output stream."""

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._size = 0

    def append(self, chunk: str) -> None:
        if chunk:
            self._chunks.append(chunk)
            self._size += len(chunk)

    def snapshot(self) -> str:
        if len(self._chunks) > 1:
            # Compact so repeated reads stay cheap.
            self._chunks = ["".join(self._chunks)]
        return self._chunks[0] if self._chunks else ""

    def __len__(self) -> int:
        return self._size


@dataclass
class CommandExecution:
    """One shell command observed in the terminal."""

    command_line: str
    start_time: datetime
    cwd: str | None = None
    status: ExecutionStatus = "running"
    end_time: datetime | None = None
    exit_code: int | None = None
    buffer: OutputBuffer = field(default_factory=OutputBuffer, repr=False)

    @property
    def output(self) -> str:
        return self.buffer.snapshot()

    @property
    def duration_seconds(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TerminalTracker:
    """Running and recently completed shell executions.

    Start, output and end events arrive from the shell integration of the
    host. Ends carry no execution id, so they are paired with the oldest
    running execution whose command line matches.
    """

    def __init__(
        self,
        *,
        max_recent: int = MAX_RECENT_EXECUTIONS,
        clock: Callable[[], datetime] = _utcnow,
        shell_integration_available: bool = False,
    ) -> None:
        self._running: dict[str, CommandExecution] = {}
        self._recent: deque[CommandExecution] = deque(maxlen=max_recent)
        self._clock = clock
        self.shell_integration_available = shell_integration_available

    def start(self, command_line: str, cwd: str | None = None) -> str:
        started = self._clock()
        execution_id = self._new_execution_id(command_line, started)
        self._running[execution_id] = CommandExecution(command_line=command_line, start_time=started, cwd=cwd)
        logger.info("terminal.command.start id={} command={}", execution_id, command_line)
        return execution_id

    def append_output(self, execution_id: str, chunk: str) -> bool:
        execution = self._running.get(execution_id)
        if execution is None:
            return False
        execution.buffer.append(chunk)
        return True

    async def capture(self, execution_id: str, stream: AsyncIterable[str]) -> int:
        """Drain ``stream`` into the execution's buffer; the stream cannot be re-read afterwards."""
        captured = 0
        async for chunk in stream:
            if self.append_output(execution_id, chunk):
                captured += len(chunk)
        logger.debug("terminal.command.captured id={} chars={}", execution_id, captured)
        return captured

    def end(self, command_line: str, exit_code: int | None) -> CommandExecution | None:
        execution_id = next(
            (key for key, execution in self._running.items() if execution.command_line == command_line),
            None,
        )
        if execution_id is None:
            logger.debug("terminal.command.end.unmatched command={}", command_line)
            return None

        execution = self._running.pop(execution_id)
        execution.exit_code = exit_code
        execution.end_time = self._clock()
        execution.status = "completed"
        self._recent.append(execution)
        logger.info("terminal.command.end id={} exit_code={}", execution_id, exit_code)
        return execution

    def running(self) -> list[CommandExecution]:
        return list(self._running.values())

    def recent(self) -> list[CommandExecution]:
        return list(self._recent)

    def elapsed_seconds(self, execution: CommandExecution) -> int:
        return int((self._clock() - execution.start_time).total_seconds())

    def _new_execution_id(self, command_line: str, started: datetime) -> str:
        base = f"{command_line}-{int(started.timestamp() * 1000)}"
        execution_id = base
        suffix = 1
        while execution_id in self._running:
            execution_id = f"{base}-{suffix}"
            suffix += 1
        return execution_id
