"""交互界面配色方案。

深色主题，参考 VS Code 风格。样式为 rich 的 style 字符串，
Theme 不可变，构造一次后传入渲染函数。
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "DEFAULT_THEME",
    "Theme",
]


@dataclass(frozen=True)
class Theme:
    """渲染样式。

    Attributes:
        header: 顶部标题栏
        border: 分隔线
        label: 详情面板中的字段名
        timestamp: 日志时间戳
        stdout / stderr: 日志行（按来源区分）
        pending / running / success / failed: 运行状态
        selection: 侧栏中选中行
        footer: 底部状态栏
        dim: 次要文本
        progress_complete / progress_finished / progress_back: 进度条
    """

    header: str = "bold #D4D4D4 on #252526"
    border: str = "#3C3C3C"
    label: str = "#569CD6"
    command: str = "#CE9178"
    timestamp: str = "#5A5A5A"
    stdout: str = "#D4D4D4"
    stderr: str = "#F44747"
    pending: str = "#6A6A6A"
    running: str = "#4FC1FF"
    success: str = "#89D185"
    failed: str = "#F44747"
    warning: str = "#DCDCAA"
    selection: str = "bold on #264F78"
    footer: str = "#D4D4D4 on #252526"
    dim: str = "#5A5A5A"
    progress_complete: str = "#00DB9A"
    progress_finished: str = "#89D185"
    progress_back: str = "#3C3C3C"

    # 运行中的动画（rich 内置 spinner 名称）
    spinner: str = "dots"

    # 状态图标
    icon_pending: str = "○"
    icon_success: str = "✓"
    icon_failed: str = "✗"

    # 侧栏与详情面板之间的分隔符
    separator: str = "│"


DEFAULT_THEME = Theme()
