import asyncio
import sys
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from fractal.terminal.shell import run_tracked
from fractal.terminal.tracker import OutputBuffer, TerminalTracker


def _ticking_clock(step_ms: int = 5):
    moment = datetime(2026, 10, 18, 9, 0, tzinfo=UTC)

    def _now() -> datetime:
        nonlocal moment
        moment += timedelta(milliseconds=step_ms)
        return moment

    return _now


def test_recent_executions_keep_the_latest_twenty() -> None:
    tracker = TerminalTracker(clock=_ticking_clock())

    for index in range(21):
        tracker.start(f"cmd {index}")
        tracker.end(f"cmd {index}", 0)

    recent = tracker.recent()
    assert len(recent) == 20
    assert recent[0].command_line == "cmd 1"
    assert recent[-1].command_line == "cmd 20"
    assert tracker.running() == []


def test_unmatched_end_is_dropped() -> None:
    tracker = TerminalTracker(clock=_ticking_clock())
    tracker.start("make")

    assert tracker.end("make test", 2) is None
    assert [execution.command_line for execution in tracker.running()] == ["make"]
    assert tracker.recent() == []


def test_end_pairs_with_first_running_match() -> None:
    tracker = TerminalTracker(clock=_ticking_clock())
    first = tracker.start("pytest")
    second = tracker.start("pytest")
    assert first != second
    tracker.append_output(first, "first run")
    tracker.append_output(second, "second run")

    ended = tracker.end("pytest", 1)

    assert ended is not None
    assert ended.output == "first run"
    assert ended.exit_code == 1
    assert ended.status == "completed"
    assert ended.end_time is not None
    assert [execution.output for execution in tracker.running()] == ["second run"]


def test_same_millisecond_starts_get_distinct_ids() -> None:
    fixed = datetime(2026, 10, 18, 9, 0, tzinfo=UTC)
    tracker = TerminalTracker(clock=lambda: fixed)

    ids = {tracker.start("ls") for _ in range(3)}

    assert len(ids) == 3
    assert len(tracker.running()) == 3


def test_output_for_unknown_execution_is_ignored() -> None:
    tracker = TerminalTracker()
    assert tracker.append_output("ghost-1", "boo") is False


def test_output_buffer_accumulates_chunks() -> None:
    buffer = OutputBuffer()
    buffer.append("abc")
    buffer.append("")
    buffer.append("def")

    assert buffer.snapshot() == "abcdef"
    assert len(buffer) == 6
    buffer.append("g")
    assert buffer.snapshot() == "abcdefg"


@pytest.mark.asyncio
async def test_capture_drains_stream_into_execution() -> None:
    tracker = TerminalTracker(clock=_ticking_clock())
    execution_id = tracker.start("npm test")

    async def _stream() -> AsyncIterator[str]:
        for chunk in ("PASS ", "src/a.test.js\n", "Tests: 1 passed"):
            yield chunk

    captured = await tracker.capture(execution_id, _stream())

    assert captured == len("PASS src/a.test.js\nTests: 1 passed")
    [running] = tracker.running()
    assert running.output == "PASS src/a.test.js\nTests: 1 passed"


@pytest.mark.asyncio
async def test_run_tracked_records_exit_code_and_output(tmp_path: Path) -> None:
    tracker = TerminalTracker()
    command = f'"{sys.executable}" -c "print(\'hello\'); raise SystemExit(3)"'

    exit_code = await run_tracked(tracker, command, tmp_path)

    assert exit_code == 3
    assert tracker.shell_integration_available is True
    [execution] = tracker.recent()
    assert execution.exit_code == 3
    assert execution.cwd == str(tmp_path)
    assert execution.output.strip() == "hello"


@pytest.mark.asyncio
async def test_run_tracked_ends_execution_when_spawn_fails(tmp_path: Path) -> None:
    tracker = TerminalTracker()

    with pytest.raises(OSError):
        await run_tracked(tracker, "echo hi", tmp_path / "missing")

    assert tracker.running() == []
    [execution] = tracker.recent()
    assert execution.command_line == "echo hi"
    assert execution.status == "completed"
    assert execution.exit_code is None


@pytest.mark.asyncio
async def test_cancelled_run_is_killed_and_ended(tmp_path: Path) -> None:
    tracker = TerminalTracker()
    command = f'"{sys.executable}" -c "import time; print(\'started\', flush=True); time.sleep(30)"'
    task = asyncio.create_task(run_tracked(tracker, command, tmp_path))
    for _ in range(200):
        running = tracker.running()
        if running and running[0].output:
            break
        await asyncio.sleep(0.05)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert tracker.running() == []
    [execution] = tracker.recent()
    assert execution.exit_code is None
    assert "started" in execution.output
