"""Interactive terminal view: event channel, state machine and renderer."""

from __future__ import annotations

from .channel import LiveSink, RunEventChannel
from .events import (
    AllComplete,
    KeyInput,
    Origin,
    OutputChunk,
    Resize,
    RunCompleted,
    RunEvent,
    RunStarted,
    Tick,
)
from .keys import KeyReader, decode_keys
from .presenter import InteractivePresenter
from .renderer import render_frame
from .state import Command, LogLine, PresenterSnapshot, PresenterState, RunState, RunStatus
from .theme import DEFAULT_THEME, Theme

__all__ = [
    "AllComplete",
    "Command",
    "DEFAULT_THEME",
    "InteractivePresenter",
    "KeyInput",
    "KeyReader",
    "LiveSink",
    "LogLine",
    "Origin",
    "OutputChunk",
    "PresenterSnapshot",
    "PresenterState",
    "Resize",
    "RunCompleted",
    "RunEvent",
    "RunEventChannel",
    "RunStarted",
    "RunState",
    "RunStatus",
    "Theme",
    "Tick",
    "decode_keys",
    "render_frame",
]
