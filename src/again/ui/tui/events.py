"""交互界面事件定义。

渲染循环按到达顺序消费以下事件：
- RunStarted / OutputChunk / RunCompleted / AllComplete: 来自执行循环
- Tick: 周期性刷新（仅用于更新运行中的耗时）
- KeyInput: 键盘输入
- Resize: 终端尺寸变化
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Union

from ...models import RunResult

__all__ = [
    "AllComplete",
    "KeyInput",
    "Origin",
    "OutputChunk",
    "Resize",
    "RunCompleted",
    "RunEvent",
    "RunStarted",
    "Tick",
]


class Origin(Enum):
    """输出来源。"""

    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class RunStarted:
    run_id: int
    at: datetime


@dataclass(frozen=True)
class OutputChunk:
    run_id: int
    origin: Origin
    data: bytes
    at: datetime


@dataclass(frozen=True)
class RunCompleted:
    result: RunResult


@dataclass(frozen=True)
class AllComplete:
    pass


@dataclass(frozen=True)
class Tick:
    at: datetime


@dataclass(frozen=True)
class KeyInput:
    """键盘输入，key 为规范化后的键名（见 keys.py）。"""

    key: str


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


RunEvent = Union[RunStarted, OutputChunk, RunCompleted, AllComplete, Tick, KeyInput, Resize]
