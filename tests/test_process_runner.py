"""ProcessRunner unit tests.

Test coverage:
- Command building (shell vs literal exec)
- Stdout/stderr capture and live sinks
- Exit classification (success, non-zero, signal, start failure)
- Per-invocation timeout
- Cancellation and process-group termination
- Bounded capture
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from again.models import RunConfig
from again.runtime.capture import truncation_notice
from again.runtime.process_runner import IS_WINDOWS, ProcessRunner, build_argv

posix_only = pytest.mark.skipif(IS_WINDOWS, reason="POSIX shell and process groups")


# =============================================================================
# Fixtures and helpers
# =============================================================================


@pytest.fixture
def runner() -> ProcessRunner:
    """ProcessRunner with short teardown timeouts for testing."""
    return ProcessRunner(kill_timeout=2.0, drain_timeout=0.5)


class CollectingSink:
    def __init__(self) -> None:
        self.chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self.chunks.append(data)
        return len(data)

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


class BrokenSink:
    def __init__(self) -> None:
        self.calls = 0

    def write(self, data: bytes) -> int:
        self.calls += 1
        raise OSError("sink is gone")


def _is_alive(pid: int) -> bool:
    """Whether pid exists and is not a zombie."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True

    stat = Path(f"/proc/{pid}/stat")
    if stat.exists():
        try:
            state = stat.read_text().rsplit(")", 1)[1].split()[0]
        except (OSError, IndexError):
            return True
        return state != "Z"
    return True


@dataclass
class SlowTeardownRunner(ProcessRunner):
    """Teardown that lingers, so a cancel can land in the middle of it."""

    linger: float = 0.3
    tearing_down: asyncio.Event = field(default_factory=asyncio.Event)

    async def _teardown(self, process, pumps) -> None:
        self.tearing_down.set()
        await asyncio.sleep(self.linger)
        await super()._teardown(process, pumps)


async def _wait_dead(pid: int, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not _is_alive(pid):
            return True
        await asyncio.sleep(0.05)
    return not _is_alive(pid)


# =============================================================================
# Command building
# =============================================================================


class TestBuildArgv:
    def test_single_token_goes_through_shell(self):
        argv = build_argv(["echo hi | tr a-z A-Z"])
        if IS_WINDOWS:
            assert argv == ["cmd", "/C", "echo hi | tr a-z A-Z"]
        else:
            assert argv == ["sh", "-c", "echo hi | tr a-z A-Z"]

    def test_multiple_tokens_are_literal(self):
        assert build_argv(["ls", "-la", "*.py"]) == ["ls", "-la", "*.py"]


# =============================================================================
# Basic execution
# =============================================================================


class TestBasicExecution:
    @posix_only
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_shell_command(self, runner: ProcessRunner):
        """单个参数通过 shell 执行，支持管道。"""
        config = RunConfig(command=("echo hello | tr a-z A-Z",))
        result = await runner.run(config, run_id=1)

        assert result.run_id == 1
        assert result.stdout == b"HELLO\n"
        assert result.exit_code == 0
        assert result.success
        assert result.error is None
        assert result.finished_at >= result.started_at
        assert result.duration >= 0

    @posix_only
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_literal_arguments_are_not_interpreted(self, runner: ProcessRunner):
        config = RunConfig(command=("echo", "$HOME", "*"))
        result = await runner.run(config, run_id=1)
        assert result.stdout == b"$HOME *\n"

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_stdout_and_stderr_captured(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--stdout", "to out", "--stderr", "to err"))
        result = await runner.run(config, run_id=2)

        assert result.stdout.replace(b"\r\n", b"\n") == b"to out\n"
        assert result.stderr.replace(b"\r\n", b"\n") == b"to err\n"
        assert result.success

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_stdin_is_not_inherited(self, runner: ProcessRunner):
        """子进程的 stdin 为空，不会阻塞等待输入。"""
        config = RunConfig(command=(sys.executable, "-c", "import sys; print(len(sys.stdin.read()))"))
        result = await runner.run(config, run_id=1)
        assert result.stdout.strip() == b"0"


# =============================================================================
# Exit classification
# =============================================================================


class TestExitClassification:
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_nonzero_exit(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--exit-code", "3"))
        result = await runner.run(config, run_id=1)

        assert result.exit_code == 3
        assert not result.success
        assert result.error == "exit status 3"
        assert not result.cancelled

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_start_failure(self, runner: ProcessRunner, tmp_path: Path):
        """可执行文件不存在：退出码 -1，错误为启动错误。"""
        missing = str(tmp_path / "no-such-binary")
        config = RunConfig(command=(missing, "--flag"))
        result = await runner.run(config, run_id=4)

        assert result.run_id == 4
        assert result.exit_code == -1
        assert not result.success
        assert result.error
        assert result.stdout == b""
        assert result.stderr == b""
        assert result.finished_at >= result.started_at

    @posix_only
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_killed_by_signal(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--kill-self", str(int(signal.SIGKILL))))
        result = await runner.run(config, run_id=1)

        assert result.exit_code == -1
        assert result.error == "signal: SIGKILL"
        assert not result.success


# =============================================================================
# Timeout and cancellation
# =============================================================================


class TestTimeout:
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_timeout_terminates_process(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--sleep", "30"), timeout=0.3)

        started = time.monotonic()
        result = await runner.run(config, run_id=1)
        elapsed = time.monotonic() - started

        assert result.error == "timeout: exceeded 300ms"
        assert result.exit_code == -1
        assert not result.success
        assert not result.cancelled
        assert elapsed < 0.3 + 3.0

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_fast_command_within_timeout(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--stdout", "quick"), timeout=20)
        result = await runner.run(config, run_id=1)
        assert result.success
        assert result.error is None

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_zero_timeout_means_unbounded(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--sleep", "0.2"), timeout=0)
        result = await runner.run(config, run_id=1)
        assert result.success

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_output_before_timeout_is_kept(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--stdout", "partial", "--sleep", "30"), timeout=0.5)
        result = await runner.run(config, run_id=1)
        assert result.error == "timeout: exceeded 500ms"
        assert b"partial" in result.stdout


class TestCancellation:
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_cancel_classifies_result(self, runner: ProcessRunner, fake_cmd: list[str]):
        config = RunConfig(command=(*fake_cmd, "--sleep", "30"))
        task = asyncio.create_task(runner.run(config, run_id=1))
        await asyncio.sleep(0.5)

        started = time.monotonic()
        task.cancel()
        result = await task

        assert result.cancelled
        assert result.error == "cancelled"
        assert result.exit_code == -1
        assert not result.success
        assert time.monotonic() - started < 3.0

    @posix_only
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_cancel_kills_process_group(
        self, runner: ProcessRunner, fake_cmd: list[str], tmp_path: Path
    ):
        """取消时整个进程组（包括孙进程）都被终止。"""
        pidfile = tmp_path / "child.pid"
        config = RunConfig(command=(*fake_cmd, "--spawn-child", str(pidfile), "--sleep", "30"))
        task = asyncio.create_task(runner.run(config, run_id=1))

        deadline = time.monotonic() + 10
        while not pidfile.exists() or not pidfile.read_text().strip():
            assert time.monotonic() < deadline, "grandchild never started"
            await asyncio.sleep(0.05)
        child_pid = int(pidfile.read_text())
        assert _is_alive(child_pid)

        task.cancel()
        result = await task

        assert result.cancelled
        assert await _wait_dead(child_pid)

    @posix_only
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_timeout_kills_process_group(
        self, runner: ProcessRunner, fake_cmd: list[str], tmp_path: Path
    ):
        pidfile = tmp_path / "child.pid"
        config = RunConfig(
            command=(*fake_cmd, "--spawn-child", str(pidfile), "--sleep", "30"),
            timeout=1.5,
        )
        result = await runner.run(config, run_id=1)

        assert result.error == "timeout: exceeded 1.5s"
        assert pidfile.exists()
        assert await _wait_dead(int(pidfile.read_text()))


    @posix_only
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_cancel_during_timeout_teardown(self, fake_cmd: list[str], tmp_path: Path):
        """超时清理期间被取消：返回 cancelled 结果，进程组仍被回收。"""
        runner = SlowTeardownRunner(kill_timeout=2.0, drain_timeout=0.5)
        pidfile = tmp_path / "child.pid"
        config = RunConfig(command=(*fake_cmd, "--spawn-child", str(pidfile), "--sleep", "30"), timeout=1.0)
        task = asyncio.create_task(runner.run(config, run_id=1))

        await runner.tearing_down.wait()
        task.cancel()
        result = await task

        assert result.cancelled
        assert result.error == "cancelled"
        assert result.exit_code == -1
        assert not result.success
        assert await _wait_dead(int(pidfile.read_text()))

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_second_cancel_during_teardown(self, fake_cmd: list[str]):
        runner = SlowTeardownRunner(kill_timeout=2.0, drain_timeout=0.5)
        config = RunConfig(command=(*fake_cmd, "--sleep", "30"))
        task = asyncio.create_task(runner.run(config, run_id=1))
        await asyncio.sleep(0.5)

        task.cancel()
        await runner.tearing_down.wait()
        task.cancel()
        result = await task

        assert result.cancelled
        assert result.error == "cancelled"


# =============================================================================
# Live sinks and bounded capture
# =============================================================================


class TestLiveSinks:
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_sinks_receive_identical_bytes(self, runner: ProcessRunner, fake_cmd: list[str]):
        out, err = CollectingSink(), CollectingSink()
        config = RunConfig(command=(*fake_cmd, "--lines", "50", "--stderr", "oops"))
        result = await runner.run(config, run_id=1, stdout_sink=out, stderr_sink=err)

        assert out.data == result.stdout
        assert err.data == result.stderr
        assert result.stdout.replace(b"\r\n", b"\n").splitlines()[-1] == b"line 50"

    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_broken_sink_does_not_fail_run(self, runner: ProcessRunner, fake_cmd: list[str]):
        sink = BrokenSink()
        config = RunConfig(command=(*fake_cmd, "--lines", "3"))
        result = await runner.run(config, run_id=1, stdout_sink=sink)

        assert result.success
        assert sink.calls == 1
        assert b"line 3" in result.stdout


class TestBoundedCapture:
    @pytest.mark.asyncio
    @pytest.mark.timeout(30)
    async def test_output_past_limit_is_truncated(self, fake_cmd: list[str]):
        runner = ProcessRunner(capture_limit=1024)
        sink = CollectingSink()
        config = RunConfig(command=(*fake_cmd, "--bytes", "5000"))
        result = await runner.run(config, run_id=1, stdout_sink=sink)

        assert result.success
        assert result.stdout == b"x" * 1024 + truncation_notice(1024)
        # The live sink is not bounded by the capture limit.
        assert len(sink.data) == 5000
