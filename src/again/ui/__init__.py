"""输出格式（观察者）模块。

三种实现按 RunConfig.output_format 选择:
- OutputFormat.INTERACTIVE: InteractivePresenter（默认）
- OutputFormat.STRUCTURED: StructuredFormatter (--json)
- OutputFormat.PLAIN: PlainFormatter (--raw)
"""

from __future__ import annotations

from ..config import Settings, get_settings
from ..models import OutputFormat, RunConfig
from .base import OutputSink, RunObserver
from .plain import PlainFormatter, StreamSink
from .structured import ResultDocument, ResultRecord, StructuredFormatter
from .tui import InteractivePresenter

__all__ = [
    "InteractivePresenter",
    "OutputSink",
    "PlainFormatter",
    "ResultDocument",
    "ResultRecord",
    "RunObserver",
    "StreamSink",
    "StructuredFormatter",
    "create_observer",
]


def create_observer(config: RunConfig, settings: Settings | None = None) -> RunObserver:
    """按输出格式创建观察者。

    Args:
        config: 已校验的运行配置
        settings: 环境配置（默认读取全局配置）

    Returns:
        对应格式的观察者实例
    """
    if config.output_format == OutputFormat.STRUCTURED:
        return StructuredFormatter(config)
    if config.output_format == OutputFormat.PLAIN:
        return PlainFormatter(config)

    settings = settings or get_settings()
    return InteractivePresenter(
        config,
        keep_open=settings.keep_ui,
        tick_interval=settings.tick_interval,
        log_cap=settings.log_lines,
    )
