"""again 环境变量配置管理。

环境变量:
    AGAIN_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (DEBUG 日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    AGAIN_KEEP_UI: 全部运行结束后是否保留交互界面
        - true/1/yes = 保留，按 q 退出 (默认)
        - false/0/no = 会话结束即退出

    AGAIN_TICK_INTERVAL: 交互界面刷新耗时显示的间隔（秒）
        - 默认 0.1 秒，限制在 0.02-5 秒

    AGAIN_LOG_LINES: 交互界面中每次运行保留的日志行数
        - 默认 1000，超出后丢弃最早的行

    AGAIN_CAPTURE_LIMIT: 每个输出流捕获的最大字节数
        - 默认 10485760 (10 MiB)

    AGAIN_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Settings", "load_settings", "get_settings", "reload_settings"]

DEFAULT_TICK_INTERVAL = 0.1
DEFAULT_LOG_LINES = 1000
DEFAULT_CAPTURE_LIMIT = 10 * 1024 * 1024
DEFAULT_DOUBLE_TAP_WINDOW = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数环境变量，限制在 [low, high] 范围内。"""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


def _parse_positive_int(value: str | None, default: int) -> int:
    """解析正整数环境变量，无效值返回默认值。"""
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass
class Settings:
    """again 运行时设置。

    Attributes:
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        keep_ui: 会话结束后是否保留交互界面
        tick_interval: 耗时刷新间隔（秒）
        log_lines: 每次运行保留的日志行数
        capture_limit: 每个输出流的捕获上限（字节）
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    log_debug: bool = False
    log_file: str | None = None
    keep_ui: bool = True
    tick_interval: float = DEFAULT_TICK_INTERVAL
    log_lines: int = DEFAULT_LOG_LINES
    capture_limit: int = DEFAULT_CAPTURE_LIMIT
    sigint_double_tap_window: float = DEFAULT_DOUBLE_TAP_WINDOW

    def __repr__(self) -> str:
        return (
            f"Settings(log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"keep_ui={self.keep_ui}, "
            f"tick_interval={self.tick_interval}, "
            f"log_lines={self.log_lines}, "
            f"capture_limit={self.capture_limit}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "again"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"again_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_settings() -> Settings:
    """从环境变量加载设置。"""
    log_debug = _parse_bool(os.environ.get("AGAIN_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Settings(
        log_debug=log_debug,
        log_file=log_file,
        keep_ui=_parse_bool(os.environ.get("AGAIN_KEEP_UI"), default=True),
        tick_interval=_parse_float(
            os.environ.get("AGAIN_TICK_INTERVAL"), DEFAULT_TICK_INTERVAL, 0.02, 5.0
        ),
        log_lines=_parse_positive_int(os.environ.get("AGAIN_LOG_LINES"), DEFAULT_LOG_LINES),
        capture_limit=_parse_positive_int(
            os.environ.get("AGAIN_CAPTURE_LIMIT"), DEFAULT_CAPTURE_LIMIT
        ),
        sigint_double_tap_window=_parse_float(
            os.environ.get("AGAIN_SIGINT_DOUBLE_TAP_WINDOW"), DEFAULT_DOUBLE_TAP_WINDOW, 0.1, 10.0
        ),
    )


# 全局设置实例（延迟加载）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局设置实例。"""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reload_settings() -> Settings:
    """重新加载设置（用于测试）。"""
    global _settings
    _settings = load_settings()
    return _settings
