"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CMD_PATH = FIXTURES_DIR / "fake_cmd.py"

from again.models import RunConfig, RunResult  # noqa: E402


@pytest.fixture
def fake_cmd() -> list[str]:
    """调用 fake_cmd.py 的命令前缀（多参数，按字面执行）。"""
    return [sys.executable, str(FAKE_CMD_PATH)]


def make_result(
    run_id: int,
    *,
    exit_code: int = 0,
    stdout: bytes = b"",
    stderr: bytes = b"",
    error: str | None = None,
    duration: float = 0.25,
    cancelled: bool = False,
) -> RunResult:
    """构造 RunResult（测试用）。"""
    started = datetime(2025, 1, 1, 12, 0, 0)
    success = exit_code == 0 and error is None
    if not success and error is None:
        error = f"exit status {exit_code}"
    return RunResult(
        run_id=run_id,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        success=success,
        started_at=started,
        finished_at=started + timedelta(seconds=duration),
        duration=duration,
        error=error,
        cancelled=cancelled,
    )


@pytest.fixture
def result_factory():
    """RunResult 工厂。"""
    return make_result


@pytest.fixture
def config_factory():
    """RunConfig 工厂。"""

    def _make(command=("echo hello",), **kwargs) -> RunConfig:
        return RunConfig(command=tuple(command), **kwargs)

    return _make
