"""Frame rendering for the interactive view.

``render_frame`` is a pure function of the presenter state and a theme:
the same state always yields the same frame, and the frame always has
exactly ``height`` rows of ``width`` cells, so the view never jitters as
logs grow.

Layout:

    <spinner> again  <command>
    sidebar (runs)  │ detail (command, status, duration, cause, log window)
    footer: progress bar, completed/total, session state, key legend

Animation is derived from the last tick carried in the state, never from
the wall clock, so rendering stays pure.
"""

from __future__ import annotations

import io
from datetime import datetime
from functools import lru_cache

from rich.console import Console
from rich.progress_bar import ProgressBar
from rich.spinner import Spinner
from rich.text import Text

from ...utils.durations import format_duration
from .events import Origin
from .state import Layout, LogLine, PresenterState, RunState, RunStatus
from .theme import DEFAULT_THEME, Theme

__all__ = ["progress_percent", "render_frame", "spinner_frame"]

KEY_LEGEND = "↑/↓ select  PgUp/PgDn scroll  Home/End  q quit"

PROGRESS_BAR_WIDTH = 20
MIN_WIDTH_FOR_BAR = 60

# Only used to turn a ProgressBar into segments; never prints.
_BAR_CONSOLE = Console(file=io.StringIO(), force_terminal=True, color_system="truecolor", legacy_windows=False)


def render_frame(state: PresenterState, theme: Theme = DEFAULT_THEME) -> Text:
    layout = state.layout

    rows: list[Text] = [_header(state, layout, theme)]

    sidebar = _sidebar_rows(state, layout, theme)
    detail = _detail_rows(state, layout, theme)
    separator = Text(theme.separator, style=theme.border)
    for sidebar_row, detail_row in zip(sidebar, detail):
        rows.append(Text.assemble(sidebar_row, separator, detail_row))

    rows.append(_footer(state, layout, theme))

    # Tiny terminals: the footer wins over the header.
    if len(rows) > layout.height:
        rows = rows[-layout.height:]

    for row in rows:
        row.truncate(layout.width, overflow="crop", pad=True)
    return Text("\n").join(rows)


@lru_cache(maxsize=None)
def _spinner(name: str) -> Spinner:
    return Spinner(name)


def spinner_frame(now: datetime | None, name: str = DEFAULT_THEME.spinner) -> str:
    """Spinner frame for a point in time (first frame before any tick)."""
    spinner = _spinner(name)
    if now is None:
        return spinner.frames[0]
    index = int(now.timestamp() * 1000 / spinner.interval) % len(spinner.frames)
    return spinner.frames[index]


def progress_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(completed * 100 // total, 100)


def _progress_bar(completed: int, total: int, width: int, theme: Theme) -> Text:
    bar = ProgressBar(
        total=max(total, 1),
        completed=completed,
        width=width,
        style=theme.progress_back,
        complete_style=theme.progress_complete,
        finished_style=theme.progress_finished,
    )
    options = _BAR_CONSOLE.options.update_width(width)
    text = Text()
    for segment in _BAR_CONSOLE.render(bar, options):
        text.append(segment.text, segment.style)
    return text


def _cell(text: Text, width: int) -> Text:
    text.truncate(width, overflow="ellipsis", pad=True)
    return text


def _header(state: PresenterState, layout: Layout, theme: Theme) -> Text:
    if state.view.finished:
        succeeded = all(run.status == RunStatus.SUCCESS for run in state.runs)
        icon = theme.icon_success if succeeded else theme.icon_failed
    else:
        icon = spinner_frame(state.view.last_tick, theme.spinner)
    text = Text(f" {icon} again  ", style=theme.header)
    text.append(state.config.command_line, style=theme.header)
    text.truncate(layout.width, overflow="ellipsis", pad=True)
    text.stylize_before(theme.header)
    return text


def _status_style(status: RunStatus, theme: Theme) -> str:
    return {
        RunStatus.PENDING: theme.pending,
        RunStatus.RUNNING: theme.running,
        RunStatus.SUCCESS: theme.success,
        RunStatus.FAILED: theme.failed,
    }[status]


def _status_icon(status: RunStatus, theme: Theme, now: datetime | None) -> str:
    if status == RunStatus.RUNNING:
        return spinner_frame(now, theme.spinner)
    return {
        RunStatus.PENDING: theme.icon_pending,
        RunStatus.SUCCESS: theme.icon_success,
        RunStatus.FAILED: theme.icon_failed,
    }[status]


def _elapsed(run: RunState, now: datetime | None) -> float | None:
    if run.duration is not None:
        return run.duration
    if run.started_at is None:
        return None
    if now is None or now < run.started_at:
        return 0.0
    return (now - run.started_at).total_seconds()


def _sidebar_rows(state: PresenterState, layout: Layout, theme: Theme) -> list[Text]:
    view = state.view
    rows: list[Text] = []

    for index in range(view.sidebar_offset, view.sidebar_offset + layout.body_height):
        if index >= len(state.runs):
            rows.append(_cell(Text(), layout.sidebar_width))
            continue

        run = state.runs[index]
        selected = index == view.selected

        row = Text("›" if selected else " ")
        icon = _status_icon(run.status, theme, view.last_tick)
        row.append(f"{icon} ", style=_status_style(run.status, theme))
        row.append(f"#{run.run_id}")
        if run.started_at is not None:
            row.append(f" {run.started_at.strftime('%H:%M:%S')}", style=theme.timestamp)
        if run.status == RunStatus.FAILED and run.exit_code is not None:
            row.append(f" exit {run.exit_code}", style=theme.failed)

        row = _cell(row, layout.sidebar_width)
        if selected:
            row.stylize(theme.selection)
        rows.append(row)

    return rows


def _detail_rows(state: PresenterState, layout: Layout, theme: Theme) -> list[Text]:
    run = state.selected_run
    width = layout.detail_width

    command = Text(" Command  ", style=theme.label)
    command.append(state.config.command_line, style=theme.command)

    status = Text(" Status   ", style=theme.label)
    status.append(f"Run {run.run_id}/{len(state.runs)} ")
    status.append(run.status.value, style=_status_style(run.status, theme))
    if run.status == RunStatus.FAILED and run.exit_code is not None:
        status.append(f" (exit code {run.exit_code})", style=theme.failed)

    duration = Text(" Duration ", style=theme.label)
    elapsed = _elapsed(run, state.view.last_tick)
    duration.append(format_duration(elapsed) if elapsed is not None else "-")

    cause = Text(" Cause    ", style=theme.label)
    if run.error:
        cause.append(run.error, style=theme.failed)
    else:
        cause = Text()

    rule = Text(" Output ", style=theme.label)
    rule.append("─" * max(width - len(rule), 0), style=theme.border)

    rows = [command, status, duration, cause, rule]

    lines = state.log_lines(run.run_id)
    offset = state.effective_log_offset()
    window = lines[offset:offset + layout.log_height]
    rows.extend(_log_row(line, theme) for line in window)

    if not lines and layout.log_height:
        placeholder = "waiting for output" if run.status == RunStatus.RUNNING else "no output"
        rows.append(Text(f" {placeholder}", style=theme.dim))

    rows = rows[:layout.body_height]
    while len(rows) < layout.body_height:
        rows.append(Text())
    return [_cell(row, width) for row in rows]


def _log_row(line: LogLine, theme: Theme) -> Text:
    style = theme.stderr if line.origin == Origin.STDERR else theme.stdout
    row = Text(f" {line.timestamp.strftime('%H:%M:%S')} ", style=theme.timestamp)
    row.append(line.text, style=style)
    return row


def _footer(state: PresenterState, layout: Layout, theme: Theme) -> Text:
    view = state.view
    session = "finished" if view.finished else "running"

    completed, total = state.completed, len(state.runs)

    text = Text(" ", style=theme.footer)
    if layout.width >= MIN_WIDTH_FOR_BAR:
        text.append_text(_progress_bar(completed, total, PROGRESS_BAR_WIDTH, theme))
        text.append(f" {progress_percent(completed, total):>3}%  ")
    text.append(f"{completed}/{total} completed  ")
    text.append(session, style=theme.success if view.finished else theme.running)
    if not view.auto_scroll:
        text.append("  [scrolled]", style=theme.warning)
    text.append(f"   {KEY_LEGEND}")
    text.truncate(layout.width, overflow="ellipsis", pad=True)
    text.stylize_before(theme.footer)
    return text
