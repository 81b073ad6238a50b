"""Async process executor.

Runs validated shell commands as OS processes under the event loop:
- Safety gate (CommandValidator, legacy destructive check, dry-run)
- Chunked stdout/stderr streaming with progress snapshots
- Timeout with SIGTERM and optional SIGKILL escalation
- Retry with exponential backoff for spawn failures, timeouts and
  non-zero exits
- Cancellation via the process table or an asyncio.Event
- Background (``cmd &``) detachment

Every process is started in its own session so that signals reach the
whole process group (``sh -c`` plus its children).
"""

import asyncio
import codecs
import inspect
import os
import signal as signal_module
import subprocess
import threading
import time
from pathlib import Path
from typing import Any

from vibe_guard.config import VibeSettings, get_settings
from vibe_guard.errors import ErrorKind, ExecutionError
from vibe_guard.execution.config import ExecutorConfig
from vibe_guard.execution.models import (
    AttemptOutcome,
    ChunkCallback,
    ExecutionOptions,
    ExecutionProgress,
    ExecutionStatus,
    ProgressEvent,
    ShellResult,
)
from vibe_guard.logging import Loggers
from vibe_guard.security.audit import AuditLog
from vibe_guard.security.models import CommandValidation, OperationType, RiskLevel
from vibe_guard.security.secrets import mask_secrets
from vibe_guard.security.validator import CommandValidator, is_dry_run

logger = Loggers.execution()

AUDIT_ACTION = "shell_command"
DRY_RUN_PREFIX = "[DRY-RUN] Would execute:"

SignalLike = signal_module.Signals | int | str


def _resolve_signal(sig: SignalLike) -> signal_module.Signals:
    if isinstance(sig, str):
        name = sig.upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        return signal_module.Signals[name]
    return signal_module.Signals(sig)


def _signal_name(returncode: int | None) -> str | None:
    if returncode is None or returncode >= 0:
        return None
    try:
        return signal_module.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


def split_background(command: str) -> tuple[str, bool]:
    """Strip a trailing ``&`` and report whether the command is backgrounded.

    ``a && b`` is not a background command.
    """
    stripped = command.rstrip()
    if stripped.endswith("&") and not stripped.endswith("&&"):
        return stripped[:-1].rstrip(), True
    return command, False


def truncate_output(text: str, max_chars: int) -> tuple[str, bool]:
    """Truncate output to ``max_chars``, keeping the head."""
    if len(text) <= max_chars:
        return text, False
    return text[:max_chars] + "\n... (output truncated)", True


def _append_capped(buffer: str, chunk: str, max_chars: int) -> str:
    # One char past the cap is kept so truncate_output still flags the overflow
    room = max_chars + 1 - len(buffer)
    if room <= 0:
        return buffer
    return buffer + chunk[:room]


def _block_reason(validation: CommandValidation) -> str:
    reason = validation.reason or "matches dangerous pattern"
    return reason.removeprefix("Blocked: ")


class ProcessExecutor:
    """Runs shell commands asynchronously with safety checks and auditing.

    Example:
        executor = ProcessExecutor(audit_log=AuditLog())
        result = await executor.execute(
            "pytest -q",
            ExecutionOptions(cwd="/project", timeout=120, retry_count=1),
        )
        if not result.success:
            print(result.error)

    The process table maps pid to process handle and is shared between the
    event loop and ``cancel()`` callers on other threads.
    """

    def __init__(
        self,
        validator: CommandValidator | None = None,
        audit_log: AuditLog | None = None,
        config: ExecutorConfig | None = None,
        settings: VibeSettings | None = None,
    ):
        """Initialize the executor.

        Args:
            validator: Command validator (default: a fresh CommandValidator).
            audit_log: Audit log for outcomes (None disables auditing here).
            config: Executor defaults.
            settings: Settings for dry-run mode and default timeout.
        """
        self.validator = validator if validator is not None else CommandValidator()
        self.audit_log = audit_log
        self.config = config if config is not None else ExecutorConfig()
        self._settings = settings
        self._processes: dict[int, Any] = {}
        self._cancelled: set[int] = set()
        self._lock = threading.Lock()

    @property
    def settings(self) -> VibeSettings:
        return self._settings or get_settings()

    # ------------------------------------------------------------------
    # Process table
    # ------------------------------------------------------------------

    def _register(self, pid: int, handle: Any) -> None:
        with self._lock:
            self._processes[pid] = handle

    def _unregister(self, pid: int) -> None:
        with self._lock:
            self._processes.pop(pid, None)

    def _was_cancelled(self, pid: int | None) -> bool:
        if pid is None:
            return False
        with self._lock:
            if pid in self._cancelled:
                self._cancelled.discard(pid)
                return True
        return False

    def active_pids(self) -> list[int]:
        """pids of tracked processes that have not exited."""
        with self._lock:
            for pid, handle in list(self._processes.items()):
                if isinstance(handle, subprocess.Popen):
                    exited = handle.poll() is not None
                else:
                    exited = handle.returncode is not None
                if exited:
                    del self._processes[pid]
            return list(self._processes)

    def cancel(self, pid: int, signal: SignalLike = signal_module.SIGTERM) -> bool:
        """Signal a tracked process group and stop tracking it.

        Args:
            pid: pid returned in a ShellResult or progress snapshot.
            signal: Signal to send (default SIGTERM).

        Returns:
            True if the process was tracked and signalled.
        """
        sig = _resolve_signal(signal)
        with self._lock:
            if pid not in self._processes:
                return False
            handle = self._processes.pop(pid)
            # Background processes have no attempt waiting to observe the mark
            if not isinstance(handle, subprocess.Popen):
                self._cancelled.add(pid)

        try:
            self._send_signal(pid, sig)
        except ProcessLookupError:
            logger.debug("cancel_process_gone", pid=pid)
            with self._lock:
                self._cancelled.discard(pid)
            return False

        logger.info("process_cancelled", pid=pid, signal=sig.name)
        return True

    def cancel_all(self, signal: SignalLike = signal_module.SIGTERM) -> int:
        """Cancel every tracked process. Returns the number signalled."""
        with self._lock:
            pids = list(self._processes)
        return sum(1 for pid in pids if self.cancel(pid, signal))

    @staticmethod
    def _send_signal(pid: int, sig: signal_module.Signals) -> None:
        try:
            os.killpg(pid, sig)
        except PermissionError:
            os.kill(pid, sig)

    # ------------------------------------------------------------------
    # Progress publishing
    # ------------------------------------------------------------------

    @staticmethod
    async def _invoke(callback: Any, value: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(value)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("progress_callback_failed", error=str(e))

    async def _publish(
        self,
        progress: ExecutionProgress,
        options: ExecutionOptions,
        event: ProgressEvent,
    ) -> None:
        progress.event = event
        progress.duration = time.time() - progress.start_time
        if options.on_progress is None and options.progress_channel is None:
            return

        snapshot = progress.snapshot()
        await self._invoke(options.on_progress, snapshot)
        if options.progress_channel is not None:
            try:
                options.progress_channel.put_nowait(snapshot)
            except asyncio.QueueFull:
                logger.debug("progress_snapshot_dropped", progress_event=event.value)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        command: str,
        options: ExecutionOptions | None = None,
    ) -> ShellResult:
        """Validate and run a command.

        Args:
            command: Shell command string.
            options: Per-call options.

        Returns:
            ShellResult. Policy rejections and process failures are returned
            as results with ``success=False``, never raised.
        """
        options = options or ExecutionOptions()
        directory = str(Path(options.cwd).expanduser()) if options.cwd else os.getcwd()
        started = time.time()

        validation = self.validator.validate(command)
        gate = self._check_gate(command, validation, directory)
        if gate is not None:
            return gate

        command_to_run, background = split_background(command)
        if background:
            return await self._execute_background(
                command, command_to_run, directory, options, validation
            )

        retry_count = (
            options.retry_count if options.retry_count is not None else self.config.retry_count
        )
        retry_delay = (
            options.retry_delay if options.retry_delay is not None else self.config.retry_delay
        )
        timeout = self._timeout_for(options)

        outcome = AttemptOutcome()
        attempts = 0
        for attempt in range(retry_count + 1):
            if attempt > 0:
                validation = self.validator.validate(command)
                gate = self._check_gate(command, validation, directory, attempts=attempts)
                if gate is not None:
                    return gate

            attempts = attempt + 1
            outcome = await self._run_attempt(
                command_to_run, directory, options, timeout, attempt
            )
            if outcome.success or outcome.error_kind is ErrorKind.CANCELLED:
                break
            if not outcome.error_kind.retryable or attempt >= retry_count:
                break

            delay = retry_delay * (2**attempt)
            logger.info(
                "execution_retry",
                command=mask_secrets(command),
                attempt=attempts,
                max_attempts=retry_count + 1,
                delay=delay,
                error_kind=outcome.error_kind.value,
            )
            if outcome.progress is not None:
                await self._publish(outcome.progress, options, ProgressEvent.RETRY)
            if await self._backoff(delay, options.cancel_event):
                outcome.error_kind = ErrorKind.CANCELLED
                outcome.error = "Command cancelled during retry backoff"
                break

        return self._finish(command, directory, outcome, attempts, started, validation)

    def _timeout_for(self, options: ExecutionOptions) -> float | None:
        if options.timeout is not None:
            return options.timeout
        if self.config.timeout_seconds is not None:
            return self.config.timeout_seconds
        return self.settings.default_timeout

    def _check_gate(
        self,
        command: str,
        validation: CommandValidation,
        directory: str,
        attempts: int = 0,
    ) -> ShellResult | None:
        """Return a terminal result if the command must not run."""
        if not validation.allowed:
            return self._rejected(
                command,
                directory,
                validation,
                stderr=f"Command blocked: {_block_reason(validation)}",
                kind=ErrorKind.BLOCKED_BY_POLICY,
                attempts=attempts,
            )

        legacy = self.validator.check_legacy(command)
        if legacy:
            return self._rejected(
                command,
                directory,
                validation,
                stderr=legacy,
                kind=ErrorKind.BLOCKED_BY_POLICY,
                attempts=attempts,
                risk_level=RiskLevel.BLOCKED,
            )

        if is_dry_run(self._settings) and validation.operation_type is not OperationType.READ:
            return self._rejected(
                command,
                directory,
                validation,
                stdout=f"{DRY_RUN_PREFIX} {command}",
                error="Write operations blocked in dry-run mode",
                kind=ErrorKind.VALIDATION_REJECTED,
                attempts=attempts,
            )

        return None

    def _rejected(
        self,
        command: str,
        directory: str,
        validation: CommandValidation,
        kind: ErrorKind,
        stdout: str = "",
        stderr: str = "",
        error: str | None = None,
        attempts: int = 0,
        risk_level: RiskLevel | None = None,
    ) -> ShellResult:
        risk = risk_level or validation.risk_level
        blocked = kind is ErrorKind.BLOCKED_BY_POLICY
        logger.warning(
            "command_rejected",
            command=mask_secrets(command),
            risk_level=risk.value,
            error_kind=kind.value,
        )
        self._audit(
            command,
            risk,
            approved=False,
            result="blocked" if blocked else "failure",
            operation_type=validation.operation_type,
            error_kind=kind.value,
        )
        return ShellResult(
            command=command,
            directory=directory,
            stdout=stdout,
            stderr=stderr,
            exit_code=1 if blocked else None,
            success=False,
            error=error or stderr,
            error_kind=kind,
            attempts=attempts,
            risk_level=risk.value,
        )

    async def _execute_background(
        self,
        command: str,
        command_to_run: str,
        directory: str,
        options: ExecutionOptions,
        validation: CommandValidation,
    ) -> ShellResult:
        """Spawn a detached process and return without waiting."""
        progress = ExecutionProgress(command=command, start_time=time.time())
        await self._publish(progress, options, ProgressEvent.STARTING)

        try:
            process = subprocess.Popen(
                command_to_run,
                shell=True,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                cwd=directory,
                env=self._build_env(options),
                start_new_session=True,
            )
        except OSError as e:
            return self._finish(
                command,
                directory,
                AttemptOutcome(
                    error_kind=ErrorKind.SPAWN_FAILURE,
                    error=f"Failed to start background process: {e}",
                    stderr=str(e),
                ),
                1,
                progress.start_time,
                validation,
            )

        self._register(process.pid, process)
        progress.pid = process.pid
        progress.status = ExecutionStatus.RUNNING
        await self._publish(progress, options, ProgressEvent.BACKGROUND)

        logger.info(
            "background_process_started",
            command=mask_secrets(command),
            pid=process.pid,
        )
        outcome = AttemptOutcome(
            stdout=f"Background process started with PID: {process.pid}",
            exit_code=0,
            pid=process.pid,
        )
        return self._finish(
            command,
            directory,
            outcome,
            1,
            progress.start_time,
            validation,
            background_pids=(process.pid,),
        )

    @staticmethod
    def _build_env(options: ExecutionOptions) -> dict[str, str]:
        return {**os.environ, "VIBE_CLI": "1", **(options.env or {})}

    async def _spawn(
        self,
        command: str,
        directory: str,
        options: ExecutionOptions,
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=directory,
                env=self._build_env(options),
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionError(ErrorKind.SPAWN_FAILURE, f"Failed to start process: {e}") from e

    async def _run_attempt(
        self,
        command: str,
        directory: str,
        options: ExecutionOptions,
        timeout: float | None,
        attempt: int,
    ) -> AttemptOutcome:
        """Spawn once, stream output and wait for exit, timeout or cancel."""
        progress = ExecutionProgress(command=command, start_time=time.time(), attempt=attempt)
        await self._publish(progress, options, ProgressEvent.STARTING)

        try:
            process = await self._spawn(command, directory, options)
        except ExecutionError as e:
            progress.status = ExecutionStatus.FAILED
            progress.stderr = e.message
            await self._publish(progress, options, ProgressEvent.EXITED)
            logger.warning("spawn_failed", command=mask_secrets(command), error=e.message)
            return AttemptOutcome(
                stderr=e.message,
                error_kind=e.kind,
                error=e.message,
                progress=progress,
            )

        pid = process.pid
        self._register(pid, process)
        progress.pid = pid
        progress.status = ExecutionStatus.RUNNING
        await self._publish(progress, options, ProgressEvent.SPAWNED)
        logger.debug("process_spawned", command=mask_secrets(command), pid=pid)

        pumps = [
            asyncio.create_task(
                self._pump(process.stdout, progress, options, ProgressEvent.STDOUT)
            ),
            asyncio.create_task(
                self._pump(process.stderr, progress, options, ProgressEvent.STDERR)
            ),
        ]

        timed_out = False
        try:
            timed_out = await self._wait(process, pid, timeout, options, progress)
        finally:
            await self._drain(pumps)
            self._unregister(pid)

        returncode = process.returncode
        progress.exit_code = returncode if returncode is not None and returncode >= 0 else None
        progress.signal = _signal_name(returncode)
        cancelled = self._was_cancelled(pid)

        outcome = AttemptOutcome(
            stdout=progress.stdout,
            stderr=progress.stderr,
            exit_code=progress.exit_code,
            signal=progress.signal,
            pid=pid,
            progress=progress,
        )

        if cancelled:
            progress.status = ExecutionStatus.CANCELLED
            outcome.error_kind = ErrorKind.CANCELLED
            outcome.error = "Command cancelled"
            await self._publish(progress, options, ProgressEvent.CANCELLED)
            return outcome

        if timed_out:
            progress.status = ExecutionStatus.FAILED
            outcome.error_kind = ErrorKind.TIMEOUT
            outcome.error = f"Command timed out after {timeout}s"
        elif returncode == 0:
            progress.status = ExecutionStatus.COMPLETED
        else:
            progress.status = ExecutionStatus.FAILED
            outcome.error_kind = ErrorKind.NON_ZERO_EXIT
            if progress.signal:
                outcome.error = f"Command terminated by {progress.signal}"
            else:
                outcome.error = f"Command exited with code {returncode}"

        await self._publish(progress, options, ProgressEvent.EXITED)
        return outcome

    async def _wait(
        self,
        process: asyncio.subprocess.Process,
        pid: int,
        timeout: float | None,
        options: ExecutionOptions,
        progress: ExecutionProgress,
    ) -> bool:
        """Wait for exit; returns True if the deadline was hit."""
        exit_task = asyncio.create_task(process.wait())
        waiters: set[asyncio.Task] = {exit_task}
        cancel_task = None
        if options.cancel_event is not None:
            cancel_task = asyncio.create_task(options.cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            # Caller task cancelled: take the process down with it
            self.cancel(pid, signal_module.SIGKILL)
            exit_task.cancel()
            raise
        finally:
            if cancel_task is not None:
                cancel_task.cancel()

        if exit_task in done:
            return False

        timed_out = False
        if cancel_task is not None and cancel_task in done:
            self.cancel(pid)
        else:
            timed_out = True
            logger.warning(
                "execution_timeout",
                command=mask_secrets(progress.command),
                pid=pid,
                timeout=timeout,
            )
            try:
                self._send_signal(pid, signal_module.SIGTERM)
            except ProcessLookupError:
                pass  # Exited between the deadline and the signal
            await self._publish(progress, options, ProgressEvent.TIMEOUT)

        await self._reap(pid, exit_task)
        return timed_out

    async def _reap(self, pid: int, exit_task: asyncio.Task) -> None:
        """Wait for a signalled process, escalating to SIGKILL after the grace period."""
        grace = self.config.kill_grace_period
        done, _ = await asyncio.wait({exit_task}, timeout=grace)
        if exit_task in done:
            return

        if grace is not None:
            logger.warning("process_kill_escalated", pid=pid, grace_period=grace)
            try:
                self._send_signal(pid, signal_module.SIGKILL)
            except ProcessLookupError:
                pass
            done, _ = await asyncio.wait({exit_task}, timeout=self.config.reap_timeout)
            if exit_task in done:
                return

        exit_task.cancel()
        logger.error("process_not_reaped", pid=pid)

    async def _drain(self, pumps: list[asyncio.Task]) -> None:
        """Let the output pumps finish, cancelling them if the pipes stay open."""
        done, pending = await asyncio.wait(pumps, timeout=self.config.reap_timeout)
        for task in pending:
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning("output_pump_failed", error=str(task.exception()))

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        progress: ExecutionProgress,
        options: ExecutionOptions,
        event: ProgressEvent,
    ) -> None:
        """Read one pipe chunk by chunk into the progress accumulators."""
        if stream is None:
            return

        is_stdout = event is ProgressEvent.STDOUT
        callback: ChunkCallback | None = options.on_stdout if is_stdout else options.on_stderr
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        max_chars = self.config.max_output_chars

        while True:
            data = await stream.read(self.config.chunk_size)
            chunk = decoder.decode(data, final=not data)
            if chunk:
                if is_stdout:
                    progress.stdout = _append_capped(progress.stdout, chunk, max_chars)
                else:
                    progress.stderr = _append_capped(progress.stderr, chunk, max_chars)
                if options.stream_output:
                    await self._invoke(callback, chunk)
                await self._publish(progress, options, event)
            if not data:
                break

    @staticmethod
    async def _backoff(delay: float, cancel_event: asyncio.Event | None) -> bool:
        """Sleep before the next attempt; returns True if cancelled meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _finish(
        self,
        command: str,
        directory: str,
        outcome: AttemptOutcome,
        attempts: int,
        started: float,
        validation: CommandValidation,
        background_pids: tuple[int, ...] = (),
    ) -> ShellResult:
        duration = time.time() - started
        max_chars = self.config.max_output_chars
        stdout, stdout_truncated = truncate_output(outcome.stdout, max_chars)
        stderr, stderr_truncated = truncate_output(outcome.stderr, max_chars)

        result = "success" if outcome.success else "failure"
        log = logger.info if outcome.success else logger.warning
        log(
            "command_executed",
            command=mask_secrets(command),
            success=outcome.success,
            exit_code=outcome.exit_code,
            duration=round(duration, 3),
            attempts=attempts,
            error_kind=outcome.error_kind.value if outcome.error_kind else None,
        )
        self._audit(
            command,
            validation.risk_level,
            approved=True,
            result=result,
            operation_type=validation.operation_type,
            exit_code=outcome.exit_code,
            signal=outcome.signal,
            duration=round(duration, 3),
            attempts=attempts,
            pid=outcome.pid,
            background=bool(background_pids) or None,
            error_kind=outcome.error_kind.value if outcome.error_kind else None,
        )

        return ShellResult(
            command=command,
            directory=directory,
            stdout=stdout,
            stderr=stderr,
            exit_code=outcome.exit_code,
            success=outcome.success,
            duration=duration,
            signal=outcome.signal,
            error=outcome.error,
            error_kind=outcome.error_kind,
            pid=outcome.pid,
            attempts=attempts,
            background_pids=background_pids,
            risk_level=validation.risk_level.value,
            truncated=stdout_truncated or stderr_truncated,
        )

    def _audit(
        self,
        command: str,
        risk_level: RiskLevel,
        approved: bool,
        result: str,
        operation_type: OperationType,
        **details: Any,
    ) -> None:
        if self.audit_log is None:
            return
        self.audit_log.log_event(
            AUDIT_ACTION,
            risk_level=risk_level,
            approved=approved,
            command=command,
            result=result,
            operation_type=operation_type,
            **details,
        )

    async def stream_command(
        self,
        command: str,
        on_stdout: ChunkCallback | None = None,
        on_stderr: ChunkCallback | None = None,
        **opts: Any,
    ) -> ShellResult:
        """Execute with live output delivered to the given callbacks.

        Args:
            command: Shell command string.
            on_stdout: Called per stdout chunk.
            on_stderr: Called per stderr chunk.
            **opts: Any other ExecutionOptions field.
        """
        options = ExecutionOptions(
            stream_output=True,
            on_stdout=on_stdout,
            on_stderr=on_stderr,
            **opts,
        )
        return await self.execute(command, options)
