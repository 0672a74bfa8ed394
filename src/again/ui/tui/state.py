"""Presenter state machine.

All mutation happens in ``PresenterState.apply``, driven by the render loop
one event at a time. Per run: pending -> running -> success | failed. Per
session: active -> finished. A user quit stops rendering without touching
run states.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ...models import RunConfig, RunResult
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

__all__ = [
    "Command",
    "Layout",
    "LogLine",
    "PresenterSnapshot",
    "PresenterState",
    "RunState",
    "RunStatus",
    "ViewState",
    "clean_line",
    "compute_layout",
]

logger = logging.getLogger(__name__)

PAGE_STRIDE = 10
DEFAULT_LOG_CAP = 1000
DEFAULT_WIDTH = 80
DEFAULT_HEIGHT = 24

# Rows of the detail pane above the log window: command, status,
# duration, cause, output rule.
DETAIL_HEADER_ROWS = 5
MIN_SIDEBAR_WIDTH = 16
MAX_SIDEBAR_WIDTH = 32

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-_]")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


class RunStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.SUCCESS, RunStatus.FAILED)


class Command(Enum):
    """Instruction returned to the render loop by a transition."""

    QUIT = "quit"  # user asked to stop
    DONE = "done"  # session finished and the view does not linger


@dataclass
class RunState:
    run_id: int
    status: RunStatus = RunStatus.PENDING
    exit_code: int | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration: float | None = None
    error: str | None = None


@dataclass(frozen=True)
class LogLine:
    timestamp: datetime
    origin: Origin
    text: str


@dataclass
class ViewState:
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    selected: int = 0
    log_offset: int = 0
    sidebar_offset: int = 0
    auto_scroll: bool = True
    follow_running: bool = True
    finished: bool = False
    quit: bool = False
    last_tick: datetime | None = None


@dataclass(frozen=True)
class Layout:
    """Panel geometry derived from the terminal size.

    Rows: one header, ``body_height`` body rows, one footer. The body is
    split into a sidebar, a one-column separator and the detail pane.
    """

    width: int
    height: int
    sidebar_width: int
    detail_width: int
    body_height: int
    log_height: int


def compute_layout(width: int, height: int) -> Layout:
    width = max(width, 1)
    height = max(height, 1)

    sidebar_width = min(max(width // 4, MIN_SIDEBAR_WIDTH), MAX_SIDEBAR_WIDTH, width // 2)
    detail_width = max(width - sidebar_width - 1, 0)
    body_height = max(height - 2, 0)
    log_height = max(body_height - DETAIL_HEADER_ROWS, 0)

    return Layout(
        width=width,
        height=height,
        sidebar_width=sidebar_width,
        detail_width=detail_width,
        body_height=body_height,
        log_height=log_height,
    )


def clean_line(text: str) -> str:
    """Strip terminal escapes and control bytes, expand tabs.

    A carriage return keeps only what was drawn last, as a terminal would
    show a progress line.
    """
    text = _ANSI_RE.sub("", text)
    text = text.rstrip("\r")
    if "\r" in text:
        text = text.rsplit("\r", 1)[1]
    return _CONTROL_RE.sub("", text.expandtabs(4))


class _LineAssembler:
    """Turns one stream's chunks into complete lines.

    Multi-byte characters and lines may be split across reads; both are
    held back until the rest arrives or the stream is flushed.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""

    def feed(self, data: bytes) -> list[str]:
        *lines, self._partial = (self._partial + self._decoder.decode(data)).split("\n")
        return lines

    def flush(self) -> list[str]:
        rest = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        return [rest] if rest else []


@dataclass(frozen=True)
class PresenterSnapshot:
    """Consistent copy of the presenter state for readers off the render loop."""

    runs: tuple[RunState, ...]
    finished: bool
    quit: bool
    selected: int

    @property
    def completed(self) -> int:
        return sum(1 for run in self.runs if run.status.terminal)

    @property
    def succeeded(self) -> int:
        return sum(1 for run in self.runs if run.status == RunStatus.SUCCESS)


@dataclass
class PresenterState:
    """Authoritative view state, mutated only through ``apply``.

    Example:
        state = PresenterState(config)
        state.apply(RunStarted(1, datetime.now()))
        state.apply(RunCompleted(result))
    """

    config: RunConfig
    log_cap: int = DEFAULT_LOG_CAP
    linger: bool = True
    view: ViewState = field(default_factory=ViewState)
    runs: list[RunState] = field(init=False)
    logs: dict[int, deque[LogLine]] = field(init=False)
    _assemblers: dict[tuple[int, Origin], _LineAssembler] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.runs = [RunState(run_id=i) for i in range(1, self.config.times + 1)]
        self.logs = {}
        self._assemblers = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def layout(self) -> Layout:
        return compute_layout(self.view.width, self.view.height)

    @property
    def selected_run(self) -> RunState:
        return self.runs[self.view.selected]

    @property
    def completed(self) -> int:
        return sum(1 for run in self.runs if run.status.terminal)

    def run_state(self, run_id: int) -> RunState | None:
        if 1 <= run_id <= len(self.runs):
            return self.runs[run_id - 1]
        return None

    def log_lines(self, run_id: int) -> list[LogLine]:
        return list(self.logs.get(run_id, ()))

    def max_log_offset(self) -> int:
        count = len(self.logs.get(self.selected_run.run_id, ()))
        return max(count - self.layout.log_height, 0)

    def effective_log_offset(self) -> int:
        """First visible log line of the selected run."""
        if self.view.auto_scroll:
            return self.max_log_offset()
        return min(self.view.log_offset, self.max_log_offset())

    def snapshot(self) -> PresenterSnapshot:
        return PresenterSnapshot(
            runs=tuple(replace(run) for run in self.runs),
            finished=self.view.finished,
            quit=self.view.quit,
            selected=self.view.selected,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply(self, event: RunEvent) -> Command | None:
        """Apply one event. Unknown or out-of-range events are ignored."""
        if isinstance(event, RunStarted):
            self._on_started(event)
        elif isinstance(event, OutputChunk):
            self._on_output(event)
        elif isinstance(event, RunCompleted):
            self._on_completed(event.result)
        elif isinstance(event, AllComplete):
            self.view.finished = True
            if not self.linger:
                return Command.DONE
        elif isinstance(event, Tick):
            self.view.last_tick = event.at
        elif isinstance(event, KeyInput):
            return self._on_key(event.key)
        elif isinstance(event, Resize):
            self.view.width = max(event.width, 1)
            self.view.height = max(event.height, 1)
            self._keep_selection_visible()
        else:
            logger.debug(f"Ignoring unknown event {event!r}")
        return None

    def _on_started(self, event: RunStarted) -> None:
        run = self.run_state(event.run_id)
        if run is None:
            logger.debug(f"Ignoring start for unknown run {event.run_id}")
            return
        if run.status != RunStatus.PENDING:
            logger.debug(f"Ignoring start for run {event.run_id} in state {run.status.value}")
            return

        run.status = RunStatus.RUNNING
        run.started_at = event.at

        if self.view.follow_running:
            self._select(event.run_id - 1)

    def _on_output(self, event: OutputChunk) -> None:
        if self.run_state(event.run_id) is None:
            logger.debug(f"Ignoring output for unknown run {event.run_id}")
            return

        key = (event.run_id, event.origin)
        assembler = self._assemblers.get(key)
        if assembler is None:
            assembler = self._assemblers[key] = _LineAssembler()
        self._append_lines(event.run_id, event.origin, event.at, assembler.feed(event.data))

    def _flush_output(self, run_id: int, at: datetime) -> None:
        """Emit the unterminated tail of each stream of a finished run."""
        for origin in Origin:
            assembler = self._assemblers.pop((run_id, origin), None)
            if assembler is not None:
                self._append_lines(run_id, origin, at, assembler.flush())

    def _append_lines(self, run_id: int, origin: Origin, at: datetime, lines: list[str]) -> None:
        log = self.logs.get(run_id)
        for raw in lines:
            text = clean_line(raw)
            if not text:
                continue
            if log is None:
                log = self.logs[run_id] = deque(maxlen=max(self.log_cap, 1))
            log.append(LogLine(timestamp=at, origin=origin, text=text))

    def _on_completed(self, result: RunResult) -> None:
        run = self.run_state(result.run_id)
        if run is None:
            logger.debug(f"Ignoring completion for unknown run {result.run_id}")
            return
        if run.status.terminal:
            logger.debug(f"Ignoring duplicate completion for run {result.run_id}")
            return

        self._flush_output(result.run_id, result.finished_at)

        # One logical update: status, exit code and timing together.
        run.status = RunStatus.SUCCESS if result.success else RunStatus.FAILED
        run.exit_code = result.exit_code
        run.started_at = run.started_at or result.started_at
        run.finished_at = result.finished_at
        run.duration = result.duration
        run.error = result.error

    def _on_key(self, key: str) -> Command | None:
        view = self.view

        if key in ("q", "ctrl-c"):
            view.quit = True
            return Command.QUIT

        if key in ("up", "k"):
            view.follow_running = False
            self._select(view.selected - 1)
        elif key in ("down", "j"):
            view.follow_running = False
            self._select(view.selected + 1)
        elif key in ("home", "g"):
            view.log_offset = 0
            view.auto_scroll = False
        elif key in ("end", "G"):
            view.log_offset = self.max_log_offset()
            view.auto_scroll = True
        elif key == "pgup":
            view.log_offset = max(self.effective_log_offset() - PAGE_STRIDE, 0)
            view.auto_scroll = False
        elif key == "pgdn":
            view.log_offset = min(self.effective_log_offset() + PAGE_STRIDE, self.max_log_offset())
            view.auto_scroll = False
        else:
            logger.debug(f"Ignoring unbound key {key!r}")
        return None

    def _select(self, index: int) -> None:
        view = self.view
        view.selected = min(max(index, 0), len(self.runs) - 1)
        view.log_offset = 0
        view.auto_scroll = True
        self._keep_selection_visible()

    def _keep_selection_visible(self) -> None:
        view = self.view
        rows = max(self.layout.body_height, 1)
        if view.selected < view.sidebar_offset:
            view.sidebar_offset = view.selected
        elif view.selected >= view.sidebar_offset + rows:
            view.sidebar_offset = view.selected - rows + 1
        view.sidebar_offset = min(max(view.sidebar_offset, 0), max(len(self.runs) - rows, 0))
