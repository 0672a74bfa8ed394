"""again 异常类。"""

from __future__ import annotations

__all__ = [
    "AgainError",
    "ConfigError",
]


class AgainError(Exception):
    """again 基础异常。"""
    pass


class ConfigError(AgainError):
    """运行配置无效（如命令为空、次数小于 1）。

    Attributes:
        field: 出错的配置字段
        message: 错误消息
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)
