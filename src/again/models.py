"""运行配置与结果模型。

- RunConfig: 一次会话的不可变配置（命令、次数、详细程度、输出格式、超时）
- RunResult: 单次调用的结果，由 ProcessRunner 创建后不再修改
- validate_run_config: 在进入核心执行之前拒绝无效配置
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .errors import ConfigError

__all__ = [
    "OutputFormat",
    "RunConfig",
    "RunResult",
    "Verbosity",
    "validate_run_config",
]


class Verbosity(Enum):
    """输出详细程度。"""

    SILENT = "silent"
    NORMAL = "normal"
    VERBOSE = "verbose"

    @classmethod
    def from_string(cls, value: str) -> "Verbosity":
        """从字符串解析详细程度。

        Raises:
            ConfigError: 未知取值
        """
        normalized = value.lower().strip()
        for level in cls:
            if level.value == normalized:
                return level
        choices = ", ".join(level.value for level in cls)
        raise ConfigError("verbosity", f"invalid verbosity {value!r} (expected one of: {choices})")


class OutputFormat(Enum):
    """输出格式。

    - INTERACTIVE: 交互式终端视图（默认）
    - STRUCTURED: 会话结束时输出一个 JSON 文档
    - PLAIN: 每个事件一行纯文本
    """

    INTERACTIVE = "interactive"
    STRUCTURED = "structured"
    PLAIN = "plain"


@dataclass(frozen=True)
class RunConfig:
    """会话配置。

    Attributes:
        command: 命令参数（单个元素时通过 shell 执行）
        times: 重复次数
        verbosity: 详细程度
        output_format: 输出格式
        timeout: 单次调用超时（秒），None 或 0 表示不限制
    """

    command: tuple[str, ...]
    times: int = 1
    verbosity: Verbosity = Verbosity.NORMAL
    output_format: OutputFormat = OutputFormat.INTERACTIVE
    timeout: float | None = None

    @property
    def command_line(self) -> str:
        """用于显示的命令行。"""
        return " ".join(self.command)

    @property
    def has_timeout(self) -> bool:
        return bool(self.timeout and self.timeout > 0)


@dataclass(frozen=True)
class RunResult:
    """单次调用结果。

    Attributes:
        run_id: 从 1 开始的序号
        exit_code: 退出码（无法启动或被取消/超时终止时为 -1）
        stdout: 捕获的标准输出（截断时附带提示）
        stderr: 捕获的标准错误（截断时附带提示）
        success: 是否成功（退出码为 0）
        started_at: 开始时间
        finished_at: 结束时间
        duration: 耗时（秒）
        error: 失败原因
        cancelled: 是否因会话取消而终止
    """

    run_id: int
    exit_code: int
    stdout: bytes
    stderr: bytes
    success: bool
    started_at: datetime
    finished_at: datetime
    duration: float
    error: str | None = None
    cancelled: bool = False

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)


def validate_run_config(config: RunConfig) -> RunConfig:
    """校验运行配置。

    Args:
        config: 待校验的配置

    Returns:
        原配置（便于链式调用）

    Raises:
        ConfigError: 配置无效
    """
    if not config.command or not any(token.strip() for token in config.command):
        raise ConfigError("command", "command cannot be empty")
    if config.times < 1:
        raise ConfigError("times", "times must be at least 1")
    if not isinstance(config.verbosity, Verbosity):
        raise ConfigError("verbosity", f"invalid verbosity: {config.verbosity!r}")
    if not isinstance(config.output_format, OutputFormat):
        raise ConfigError("output_format", f"invalid output format: {config.output_format!r}")
    if config.timeout is not None and not math.isfinite(config.timeout):
        raise ConfigError("timeout", "timeout must be a finite number")
    if config.timeout is not None and config.timeout < 0:
        raise ConfigError("timeout", "timeout cannot be negative")
    return config
