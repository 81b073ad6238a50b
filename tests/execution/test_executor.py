"""Tests for the async process executor.

Only harmless commands (echo, sleep, exit, printf) are actually spawned.
Dangerous commands are used solely to check that they are never spawned.
"""

import asyncio
import os
import signal
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from vibe_guard.errors import ErrorKind
from vibe_guard.execution import (
    ExecutionOptions,
    ExecutionStatus,
    ExecutorConfig,
    ProcessExecutor,
    ProgressEvent,
    split_background,
)
from vibe_guard.security.audit import AuditLog


class TestSafetyGate:
    """Commands that must never reach the OS."""

    @pytest.mark.asyncio
    async def test_blocked_command_never_spawns(self, executor: ProcessExecutor):
        with patch("asyncio.create_subprocess_shell") as spawn:
            result = await executor.execute("rm -rf /")

        spawn.assert_not_called()
        assert result.success is False
        assert result.exit_code == 1
        assert result.stdout == ""
        assert result.stderr.startswith("Command blocked: matches dangerous pattern")
        assert "Blocked:" not in result.stderr
        assert result.error_kind is ErrorKind.BLOCKED_BY_POLICY

    @pytest.mark.asyncio
    async def test_blocked_command_audited_once(
        self, executor: ProcessExecutor, audit_log: AuditLog
    ):
        await executor.execute("rm -rf /")

        entries = audit_log.get_recent()
        assert len(entries) == 1
        assert entries[0].action == "shell_command"
        assert entries[0].result == "blocked"
        assert entries[0].risk_level == "blocked"
        assert entries[0].approved is False

    @pytest.mark.asyncio
    async def test_legacy_check_blocks(self, executor: ProcessExecutor):
        """kill -9 passes the validator but not the legacy check."""
        with patch("asyncio.create_subprocess_shell") as spawn:
            result = await executor.execute("kill -9 99999999")

        spawn.assert_not_called()
        assert result.error_kind is ErrorKind.BLOCKED_BY_POLICY
        assert "Destructive command blocked for safety" in result.stderr

    @pytest.mark.asyncio
    async def test_dry_run_rejects_non_read(self, dry_run_context):
        executor = ProcessExecutor(settings=dry_run_context.settings)
        with patch("asyncio.create_subprocess_shell") as spawn:
            result = await executor.execute("touch created.txt")

        spawn.assert_not_called()
        assert result.success is False
        assert result.error_kind is ErrorKind.VALIDATION_REJECTED
        assert result.stdout == "[DRY-RUN] Would execute: touch created.txt"

    @pytest.mark.asyncio
    async def test_dry_run_allows_read(self, dry_run_context):
        executor = ProcessExecutor(settings=dry_run_context.settings)
        result = await executor.execute("echo still-works")

        assert result.success is True
        assert result.stdout.strip() == "still-works"


class TestExecution:
    """Normal runs, streaming and progress."""

    @pytest.mark.asyncio
    async def test_echo_streams_and_succeeds(self, executor: ProcessExecutor):
        chunks: list[str] = []

        result = await executor.stream_command("echo hello", on_stdout=chunks.append)

        assert result.success is True
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert "".join(chunks).strip() == "hello"
        assert result.attempts == 1
        assert result.risk_level == "safe"
        assert result.duration >= 0

    @pytest.mark.asyncio
    async def test_stderr_captured(self, executor: ProcessExecutor):
        errors: list[str] = []

        result = await executor.stream_command(
            "echo oops 1>&2", on_stderr=errors.append, retry_count=0
        )

        assert result.success is True
        assert result.stderr.strip() == "oops"
        assert "".join(errors).strip() == "oops"

    @pytest.mark.asyncio
    async def test_no_callbacks_without_stream_output(self, executor: ProcessExecutor):
        chunks: list[str] = []
        options = ExecutionOptions(on_stdout=chunks.append)

        result = await executor.execute("echo quiet", options)

        assert result.stdout.strip() == "quiet"
        assert chunks == []

    @pytest.mark.asyncio
    async def test_progress_lifecycle(self, executor: ProcessExecutor):
        snapshots = []
        options = ExecutionOptions(on_progress=snapshots.append)

        await executor.execute("echo progress", options)

        events = [s.event for s in snapshots]
        assert events[0] is ProgressEvent.STARTING
        assert snapshots[0].pid is None
        assert snapshots[0].status is ExecutionStatus.STARTING
        assert ProgressEvent.SPAWNED in events
        assert ProgressEvent.STDOUT in events
        assert events[-1] is ProgressEvent.EXITED
        assert snapshots[-1].status is ExecutionStatus.COMPLETED
        assert snapshots[-1].exit_code == 0

    @pytest.mark.asyncio
    async def test_progress_channel_receives_snapshots(self, executor: ProcessExecutor):
        channel: asyncio.Queue = asyncio.Queue()

        await executor.execute("echo channel", ExecutionOptions(progress_channel=channel))

        assert not channel.empty()
        first = channel.get_nowait()
        assert first.event is ProgressEvent.STARTING

    @pytest.mark.asyncio
    async def test_full_progress_channel_drops_snapshots(
        self, executor: ProcessExecutor, audit_log: AuditLog
    ):
        channel: asyncio.Queue = asyncio.Queue(maxsize=1)
        chunks: list[str] = []
        options = ExecutionOptions(
            progress_channel=channel, stream_output=True, on_stdout=chunks.append
        )

        result = await executor.execute("echo dropped; echo again", options)

        assert result.success is True
        assert result.stdout == "dropped\nagain\n"
        assert "".join(chunks) == "dropped\nagain\n"
        assert channel.qsize() == 1
        assert channel.get_nowait().event is ProgressEvent.STARTING
        assert audit_log.get_recent(1)[0].result == "success"

    @pytest.mark.asyncio
    async def test_cwd_and_env(self, executor: ProcessExecutor, tmp_path: Path):
        options = ExecutionOptions(cwd=str(tmp_path), env={"VIBE_TEST_VALUE": "42"})

        result = await executor.execute('printf "%s %s" "$PWD" "$VIBE_TEST_VALUE"', options)

        assert result.success is True
        assert result.stdout == f"{tmp_path} 42"
        assert result.directory == str(tmp_path)

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, executor: ProcessExecutor):
        result = await executor.execute("exit 3")

        assert result.success is False
        assert result.exit_code == 3
        assert result.error_kind is ErrorKind.NON_ZERO_EXIT

    @pytest.mark.asyncio
    async def test_missing_cwd_is_spawn_failure(self, executor: ProcessExecutor, tmp_path: Path):
        result = await executor.execute(
            "echo never", ExecutionOptions(cwd=str(tmp_path / "missing"))
        )

        assert result.success is False
        assert result.error_kind is ErrorKind.SPAWN_FAILURE

    @pytest.mark.asyncio
    async def test_output_truncated(self, mock_context):
        executor = ProcessExecutor(
            config=ExecutorConfig(max_output_chars=10), settings=mock_context.settings
        )

        result = await executor.execute("printf '%050d' 0")

        assert result.truncated is True
        assert result.stdout.startswith("0" * 10)
        assert "truncated" in result.stdout

    @pytest.mark.asyncio
    async def test_progress_output_capped_while_running(self, mock_context):
        executor = ProcessExecutor(
            config=ExecutorConfig(max_output_chars=10, chunk_size=8),
            settings=mock_context.settings,
        )
        sizes: list[int] = []
        chunks: list[str] = []
        options = ExecutionOptions(
            on_progress=lambda snapshot: sizes.append(len(snapshot.stdout)),
            stream_output=True,
            on_stdout=chunks.append,
        )

        result = await executor.execute("printf '%0500d' 0", options)

        assert max(sizes) <= 11
        assert len("".join(chunks)) == 500
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_success_audited(self, executor: ProcessExecutor, audit_log: AuditLog):
        await executor.execute("echo audited")

        entry = audit_log.get_recent(1)[0]
        assert entry.action == "shell_command"
        assert entry.result == "success"
        assert entry.details["exit_code"] == 0


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timeout_terminates_promptly(self, executor: ProcessExecutor):
        started = time.monotonic()

        result = await executor.execute("sleep 5", ExecutionOptions(timeout=0.5))

        elapsed = time.monotonic() - started
        assert elapsed < 1.0
        assert result.success is False
        assert result.error_kind is ErrorKind.TIMEOUT
        assert "timed out" in result.error
        assert result.signal == "SIGTERM"

    @pytest.mark.asyncio
    async def test_timeout_publishes_event(self, executor: ProcessExecutor):
        snapshots = []

        await executor.execute(
            "sleep 5", ExecutionOptions(timeout=0.2, on_progress=snapshots.append)
        )

        assert ProgressEvent.TIMEOUT in [s.event for s in snapshots]

    @pytest.mark.asyncio
    async def test_kill_escalation_after_grace(self, mock_context):
        """A process ignoring SIGTERM is killed after the grace period."""
        executor = ProcessExecutor(
            config=ExecutorConfig(kill_grace_period=0.3), settings=mock_context.settings
        )
        started = time.monotonic()

        result = await executor.execute(
            "trap '' TERM; sleep 5", ExecutionOptions(timeout=0.3)
        )

        assert time.monotonic() - started < 2.0
        assert result.error_kind is ErrorKind.TIMEOUT
        assert executor.active_pids() == []


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_with_exponential_backoff(self, executor: ProcessExecutor):
        starts: list[float] = []

        def record(snapshot):
            if snapshot.event is ProgressEvent.STARTING:
                starts.append(time.monotonic())

        result = await executor.execute(
            "exit 1",
            ExecutionOptions(retry_count=2, retry_delay=0.1, on_progress=record),
        )

        assert result.success is False
        assert result.attempts == 3
        assert len(starts) == 3
        assert starts[1] - starts[0] >= 0.1
        assert starts[2] - starts[1] >= 0.2

    @pytest.mark.asyncio
    async def test_retry_events_published(self, executor: ProcessExecutor):
        snapshots = []

        await executor.execute(
            "exit 1",
            ExecutionOptions(retry_count=1, retry_delay=0.01, on_progress=snapshots.append),
        )

        assert [s.event for s in snapshots].count(ProgressEvent.RETRY) == 1

    @pytest.mark.asyncio
    async def test_success_not_retried(self, executor: ProcessExecutor):
        result = await executor.execute(
            "echo once", ExecutionOptions(retry_count=3, retry_delay=0.01)
        )

        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_blocked_not_retried(self, executor: ProcessExecutor):
        result = await executor.execute("rm -rf /", ExecutionOptions(retry_count=3))

        assert result.attempts == 0
        assert result.error_kind is ErrorKind.BLOCKED_BY_POLICY

    @pytest.mark.asyncio
    async def test_cancel_event_abandons_backoff(self, executor: ProcessExecutor):
        cancel = asyncio.Event()
        options = ExecutionOptions(retry_count=1, retry_delay=5.0, cancel_event=cancel)

        async def cancel_soon():
            await asyncio.sleep(0.3)
            cancel.set()

        started = time.monotonic()
        result, _ = await asyncio.gather(executor.execute("exit 1", options), cancel_soon())

        assert time.monotonic() - started < 2.0
        assert result.error_kind is ErrorKind.CANCELLED
        assert result.attempts == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_running_process(self, executor: ProcessExecutor):
        pids: list[int] = []

        def on_progress(snapshot):
            if snapshot.event is ProgressEvent.SPAWNED:
                pids.append(snapshot.pid)

        task = asyncio.create_task(
            executor.execute(
                "sleep 5", ExecutionOptions(retry_count=2, on_progress=on_progress)
            )
        )
        while not pids:
            await asyncio.sleep(0.01)

        assert pids[0] in executor.active_pids()
        assert executor.cancel(pids[0]) is True
        assert pids[0] not in executor.active_pids()

        result = await asyncio.wait_for(task, timeout=3.0)
        assert result.error_kind is ErrorKind.CANCELLED
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_cancel_event_stops_running_process(self, executor: ProcessExecutor):
        cancel = asyncio.Event()

        async def cancel_soon():
            await asyncio.sleep(0.2)
            cancel.set()

        result, _ = await asyncio.gather(
            executor.execute("sleep 5", ExecutionOptions(cancel_event=cancel)),
            cancel_soon(),
        )

        assert result.error_kind is ErrorKind.CANCELLED

    def test_cancel_unknown_pid(self, executor: ProcessExecutor):
        assert executor.cancel(999999999) is False

    def test_cancel_all_empty(self, executor: ProcessExecutor):
        assert executor.cancel_all() == 0

    @pytest.mark.asyncio
    async def test_cancel_all_running(self, executor: ProcessExecutor):
        pids: list[int] = []

        def on_progress(snapshot):
            if snapshot.event is ProgressEvent.SPAWNED:
                pids.append(snapshot.pid)

        tasks = [
            asyncio.create_task(
                executor.execute("sleep 5", ExecutionOptions(on_progress=on_progress))
            )
            for _ in range(2)
        ]
        while len(pids) < 2:
            await asyncio.sleep(0.01)

        assert executor.cancel_all() == 2
        assert executor.active_pids() == []

        results = await asyncio.wait_for(asyncio.gather(*tasks), timeout=3.0)
        assert [r.error_kind for r in results] == [ErrorKind.CANCELLED] * 2
        assert sorted(r.pid for r in results) == sorted(pids)


class TestBackground:
    def test_split_background(self):
        assert split_background("sleep 5 &") == ("sleep 5", True)
        assert split_background("make && make test") == ("make && make test", False)
        assert split_background("echo hi") == ("echo hi", False)

    @pytest.mark.asyncio
    async def test_background_process_detached(self, executor: ProcessExecutor):
        started = time.monotonic()

        result = await executor.execute("sleep 5 &")

        assert time.monotonic() - started < 1.0
        assert result.success is True
        assert len(result.background_pids) == 1
        pid = result.background_pids[0]
        assert f"PID: {pid}" in result.stdout
        assert pid in executor.active_pids()
        assert os.getpgid(pid) == pid

        assert executor.cancel(pid, signal.SIGKILL) is True
        assert pid not in executor.active_pids()
        assert not executor._was_cancelled(pid)
