"""Process runner with process-group isolation and reliable termination.

This module provides:
- Command building (single token through the platform shell, otherwise exec)
- Cross-platform subprocess isolation (new session/process group)
- Bounded stdout/stderr capture, duplicated into optional live sinks
- Per-invocation timeout and cancel-safe process-group teardown

Key design points:
- POSIX: start_new_session=True so the child leads its own process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Cancellation kills the whole process group, then still waits for exit
- Every path returns a complete RunResult; failures are data, not exceptions
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import anyio

from ..config import DEFAULT_CAPTURE_LIMIT
from ..models import RunConfig, RunResult
from ..utils.durations import format_duration
from .capture import BoundedBuffer

__all__ = [
    "IS_WINDOWS",
    "OutputSink",
    "ProcessRunner",
    "build_argv",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

DEFAULT_CHUNK_SIZE = 4096
DEFAULT_KILL_TIMEOUT = 5.0  # seconds to wait for exit after SIGKILL
DEFAULT_DRAIN_TIMEOUT = 1.0  # seconds to wait for pipes to close after exit

CANCELLED_CAUSE = "cancelled"


class OutputSink(Protocol):
    """Writable byte sink receiving live subprocess output."""

    def write(self, data: bytes) -> int: ...


def build_argv(command: Sequence[str]) -> list[str]:
    """Build the argv for a command.

    A single token is handed to the platform shell so pipes, globs and
    redirections work; several tokens are executed literally.

    Args:
        command: Command tokens (non-empty)

    Returns:
        Argument vector for create_subprocess_exec
    """
    if len(command) == 1:
        if IS_WINDOWS:
            return ["cmd", "/C", command[0]]
        return ["sh", "-c", command[0]]
    return list(command)


@dataclass
class ProcessRunner:
    """Runs one command invocation and reports a RunResult.

    The ambient cancellation context is the calling task: cancelling it
    while a subprocess is running kills the subprocess's process group and
    yields a result classified as ``"cancelled"``.

    Example:
        runner = ProcessRunner()
        config = RunConfig(command=("echo hello",))
        result = await runner.run(config, run_id=1)
        assert result.stdout == b"hello\\n"
    """

    capture_limit: int = DEFAULT_CAPTURE_LIMIT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT

    async def run(
        self,
        config: RunConfig,
        run_id: int,
        stdout_sink: OutputSink | None = None,
        stderr_sink: OutputSink | None = None,
    ) -> RunResult:
        """Run the configured command once.

        Args:
            config: Session configuration (command, timeout)
            run_id: 1-based invocation number
            stdout_sink: Optional live sink for stdout bytes
            stderr_sink: Optional live sink for stderr bytes

        Returns:
            RunResult with timing, exit status and captured output
        """
        argv = build_argv(config.command)
        stdout = BoundedBuffer(self.capture_limit)
        stderr = BoundedBuffer(self.capture_limit)

        started_at = datetime.now()
        started = time.monotonic()
        exit_code = -1
        error: str | None = None
        cancelled = False

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **self._build_subprocess_kwargs(),
            )
        except OSError as e:
            logger.debug(f"Run {run_id}: failed to start {argv[0]!r}: {e}")
            error = str(e)
        except asyncio.CancelledError:
            logger.debug(f"Run {run_id}: cancelled before the subprocess started")
            error = CANCELLED_CAUSE
            cancelled = True
        else:
            logger.debug(f"Run {run_id}: started subprocess pid={process.pid} argv={argv}")

            pumps = [
                asyncio.create_task(self._pump(process.stdout, stdout, stdout_sink, "stdout")),
                asyncio.create_task(self._pump(process.stderr, stderr, stderr_sink, "stderr")),
            ]

            try:
                timed_out = await self._wait(process, pumps, config.timeout if config.has_timeout else None)
            except asyncio.CancelledError:
                logger.info(f"Run {run_id}: cancelled, killing process group pid={process.pid}")
                await self._safe_teardown(process, pumps)
                error = CANCELLED_CAUSE
                cancelled = True
            else:
                if timed_out:
                    logger.info(
                        f"Run {run_id}: timed out after {format_duration(config.timeout or 0)}, "
                        f"killing process group pid={process.pid}"
                    )
                    if await self._safe_teardown(process, pumps):
                        error = CANCELLED_CAUSE
                        cancelled = True
                    else:
                        error = f"timeout: exceeded {format_duration(config.timeout or 0)}"
                else:
                    exit_code, error = self._classify_exit(process.returncode)

            logger.debug(
                f"Run {run_id}: subprocess finished pid={process.pid} "
                f"returncode={process.returncode} error={error}"
            )

        finished_at = datetime.now()
        return RunResult(
            run_id=run_id,
            exit_code=exit_code,
            stdout=stdout.finalize(),
            stderr=stderr.finalize(),
            success=error is None and exit_code == 0,
            started_at=started_at,
            finished_at=finished_at,
            duration=time.monotonic() - started,
            error=error,
            cancelled=cancelled,
        )

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    async def _wait(
        self,
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Task[None]],
        timeout: float | None,
    ) -> bool:
        """Wait for exit and drained pipes.

        Returns:
            True if the per-invocation timeout fired first
        """
        if timeout is None:
            await self._wait_exit(process, pumps)
            return False

        with anyio.move_on_after(timeout) as scope:
            await self._wait_exit(process, pumps)
        return scope.cancelled_caught

    async def _wait_exit(
        self,
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Task[None]],
    ) -> None:
        await process.wait()
        # asyncio.wait does not cancel the pumps when we are cancelled,
        # so they keep draining while the group is torn down.
        await asyncio.wait(pumps)

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        buffer: BoundedBuffer,
        sink: OutputSink | None,
        name: str,
    ) -> None:
        """Copy a pipe into its capture buffer and live sink until EOF."""
        if stream is None:
            return

        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            buffer.write(chunk)
            if sink is not None:
                try:
                    sink.write(chunk)
                except Exception as e:
                    logger.warning(f"Live {name} sink failed, detaching it: {e}")
                    sink = None

    async def _safe_teardown(
        self,
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Task[None]],
    ) -> bool:
        """Kill the process group and reap it, shielded from cancellation.

        Returns:
            True if the caller was cancelled while tearing down
        """
        task = asyncio.create_task(self._teardown(process, pumps))
        interrupted = False
        while True:
            try:
                await asyncio.shield(task)
                return interrupted
            except asyncio.CancelledError:
                if task.cancelled():
                    raise
                # Keep reaping; the cancellation is reported in the result.
                logger.debug(f"Cancelled during teardown pid={process.pid}, still reaping")
                interrupted = True

    async def _teardown(
        self,
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Task[None]],
    ) -> None:
        pid = process.pid
        self._kill_group(process)

        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            logger.debug(f"Subprocess killed pid={pid} returncode={process.returncode}")
        except asyncio.TimeoutError:
            logger.warning(f"Subprocess did not exit after kill pid={pid}")

        pending = [task for task in pumps if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=self.drain_timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.wait(still_running)

    def _kill_group(self, process: asyncio.subprocess.Process) -> None:
        """Send SIGKILL to the whole process group (kill() on Windows)."""
        if IS_WINDOWS:
            try:
                process.kill()
                logger.debug(f"Called kill() on pid={process.pid}")
            except ProcessLookupError:
                pass
            return

        try:
            # pgid == pid because of start_new_session; valid even after the
            # leader exited as long as group members remain.
            os.killpg(process.pid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group pgid={process.pid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            try:
                process.kill()
            except ProcessLookupError:
                pass

    @staticmethod
    def _classify_exit(returncode: int | None) -> tuple[int, str | None]:
        """Map a return code to (exit_code, failure cause)."""
        if returncode is None:
            return -1, "exit status unknown"
        if returncode == 0:
            return 0, None
        if returncode < 0:
            try:
                name = signal.Signals(-returncode).name
            except ValueError:
                name = str(-returncode)
            return -1, f"signal: {name}"
        return returncode, f"exit status {returncode}"
