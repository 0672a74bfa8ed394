"""帧渲染测试。

render_frame 是状态的纯函数：相同状态渲染出相同的帧，
帧的行数始终等于终端高度。
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from rich.console import Console

from again.models import RunConfig
from again.ui.tui.events import (
    AllComplete,
    KeyInput,
    Origin,
    OutputChunk,
    Resize,
    RunCompleted,
    RunStarted,
    Tick,
)
from again.ui.tui.renderer import progress_percent, render_frame, spinner_frame
from again.ui.tui.state import PresenterState
from again.ui.tui.theme import DEFAULT_THEME, Theme

T0 = datetime(2025, 1, 1, 12, 0, 0)


def _plain_rows(state: PresenterState, theme: Theme = DEFAULT_THEME) -> list[str]:
    return render_frame(state, theme).plain.split("\n")


def _state(times: int = 3) -> PresenterState:
    return PresenterState(RunConfig(command=("make", "test"), times=times))


class TestFrameShape:
    @pytest.mark.parametrize(("width", "height"), [(100, 40), (80, 24), (40, 8), (20, 3), (30, 1)])
    def test_height_equals_terminal(self, width: int, height: int):
        state = _state(5)
        state.apply(Resize(width, height))
        rows = _plain_rows(state)
        assert len(rows) == height

    def test_constant_height_as_logs_grow(self):
        state = _state(2)
        state.apply(Resize(90, 30))
        state.apply(RunStarted(1, T0))

        heights = set()
        for i in range(60):
            state.apply(OutputChunk(1, Origin.STDOUT, f"output {i}\n".encode(), T0))
            heights.add(len(_plain_rows(state)))
        assert heights == {30}

    def test_rows_have_terminal_width(self):
        state = _state(3)
        state.apply(Resize(70, 20))
        console = Console(width=200)
        for row in render_frame(state).split("\n"):
            assert console.measure(row).maximum == 70

    def test_long_lines_cropped(self):
        state = _state(1)
        state.apply(Resize(60, 15))
        state.apply(OutputChunk(1, Origin.STDOUT, b"y" * 500 + b"\n", T0))
        frame = render_frame(state)
        assert all(len(row.plain) <= 60 for row in frame.split("\n"))


class TestPurity:
    def test_same_resize_twice_identical(self, result_factory):
        """相同的 resize(100, 40) 两次，渲染结果完全相同。"""
        state = _state(5)
        state.apply(RunStarted(1, T0))
        state.apply(OutputChunk(1, Origin.STDOUT, b"hello\nworld\n", T0))
        state.apply(RunCompleted(result_factory(1)))

        state.apply(Resize(100, 40))
        first = render_frame(state)
        state.apply(Resize(100, 40))
        second = render_frame(state)

        assert first.plain == second.plain
        assert first.spans == second.spans

    def test_render_does_not_mutate_state(self):
        state = _state(2)
        state.apply(Resize(80, 24))
        before = state.snapshot()
        render_frame(state)
        render_frame(state)
        assert state.snapshot() == before


class TestContent:
    def test_header_and_footer(self, result_factory):
        state = _state(3)
        state.apply(Resize(120, 20))
        state.apply(RunStarted(1, T0))
        state.apply(RunCompleted(result_factory(1)))

        rows = _plain_rows(state)
        assert "again" in rows[0]
        assert "make test" in rows[0]
        assert "1/3 completed" in rows[-1]
        assert "running" in rows[-1]
        assert "q quit" in rows[-1]

    def test_sidebar_lists_runs_with_icons(self, result_factory):
        state = _state(3)
        state.apply(Resize(120, 20))
        state.apply(RunStarted(1, T0))
        state.apply(RunCompleted(result_factory(1)))
        state.apply(RunStarted(2, T0))
        state.apply(RunCompleted(result_factory(2, exit_code=4)))

        body = "\n".join(_plain_rows(state)[1:-1])
        assert "✓ #1 12:00:00" in body
        assert "✗ #2 12:00:00 exit 4" in body
        assert "○ #3" in body

    def test_detail_shows_selected_run(self, result_factory):
        state = _state(3)
        state.apply(Resize(120, 20))
        state.apply(RunStarted(2, T0))
        state.apply(OutputChunk(2, Origin.STDERR, b"boom\n", T0))
        state.apply(RunCompleted(result_factory(2, exit_code=4, duration=1.5)))

        text = "\n".join(_plain_rows(state))
        assert "Run 2/3 failed (exit code 4)" in text
        assert "Duration 1.5s" in text
        assert "Cause    exit status 4" in text
        assert "boom" in text

    def test_running_elapsed_uses_last_tick(self):
        state = _state(1)
        state.apply(Resize(120, 20))
        state.apply(RunStarted(1, T0))
        state.apply(Tick(T0 + timedelta(seconds=2)))
        assert "Duration 2s" in "\n".join(_plain_rows(state))

    def test_log_window_follows_newest_line(self):
        state = _state(1)
        state.apply(Resize(100, 15))
        lines = "".join(f"entry {i}\n" for i in range(1, 51)).encode()
        state.apply(OutputChunk(1, Origin.STDOUT, lines, T0))

        text = "\n".join(_plain_rows(state))
        assert "entry 50" in text
        assert "entry 42 " not in text

        state.apply(KeyInput("home"))
        text = "\n".join(_plain_rows(state))
        assert "entry 1 " in text
        assert "entry 50" not in text
        assert "[scrolled]" in _plain_rows(state)[-1]

    def test_finished_session(self):
        state = _state(1)
        state.apply(AllComplete())
        assert "finished" in _plain_rows(state)[-1]

    def test_custom_theme_icons(self, result_factory):
        theme = Theme(icon_success="+", icon_pending=".")
        state = _state(2)
        state.apply(Resize(100, 12))
        state.apply(RunStarted(1, T0))
        state.apply(RunCompleted(result_factory(1)))

        body = "\n".join(_plain_rows(state, theme))
        assert "+ #1" in body
        assert ". #2" in body


class TestProgressAndSpinner:
    def test_progress_bar_tracks_completion(self, result_factory):
        state = _state(4)
        state.apply(Resize(120, 20))
        assert " 0%" in _plain_rows(state)[-1]

        for run_id in (1, 2):
            state.apply(RunStarted(run_id, T0))
            state.apply(RunCompleted(result_factory(run_id)))

        footer = _plain_rows(state)[-1]
        assert "━" in footer
        assert "50%" in footer
        assert "2/4 completed" in footer

    def test_bar_fill_uses_complete_style(self, result_factory):
        theme = Theme(progress_complete="#010203", progress_back="#040506")
        state = _state(2)
        state.apply(Resize(120, 20))
        state.apply(RunStarted(1, T0))
        state.apply(RunCompleted(result_factory(1)))

        footer = render_frame(state, theme).split("\n")[-1]
        filled = sum(
            span.end - span.start
            for span in footer.spans
            if "#010203" in str(span.style)
        )
        assert filled == 10

    def test_narrow_terminal_has_no_bar(self):
        state = _state(2)
        state.apply(Resize(50, 10))
        footer = _plain_rows(state)[-1]
        assert "━" not in footer
        assert footer.startswith(" 0/2 completed")

    @pytest.mark.parametrize(("completed", "total", "expected"), [(0, 3, 0), (1, 3, 33), (3, 3, 100), (0, 0, 0)])
    def test_progress_percent(self, completed: int, total: int, expected: int):
        assert progress_percent(completed, total) == expected

    def test_spinner_advances_with_tick(self):
        state = _state(2)
        state.apply(Resize(100, 12))
        state.apply(RunStarted(1, T0))

        frames = set()
        for step in range(10):
            state.apply(Tick(T0 + timedelta(milliseconds=80 * step)))
            rows = _plain_rows(state)
            frame = spinner_frame(state.view.last_tick)
            assert rows[0].startswith(f" {frame} again")
            assert f"{frame} #1" in "\n".join(rows[1:-1])
            frames.add(frame)
        assert len(frames) > 1

    def test_spinner_is_deterministic(self):
        at = T0 + timedelta(seconds=7)
        assert spinner_frame(at) == spinner_frame(at)
        assert spinner_frame(None) == spinner_frame(None)

    def test_finished_header_shows_outcome(self, result_factory):
        state = _state(2)
        state.apply(Resize(100, 12))
        for run_id, code in ((1, 0), (2, 3)):
            state.apply(RunStarted(run_id, T0))
            state.apply(RunCompleted(result_factory(run_id, exit_code=code)))
        state.apply(AllComplete())
        assert _plain_rows(state)[0].startswith(" ✗ again")
