"""again 工具函数。"""

from .durations import format_duration, parse_duration

__all__ = ["format_duration", "parse_duration"]
