"""Interactive presenter.

A single render loop consumes the run event channel, applies each event to
``PresenterState`` and redraws with ``rich.live.Live``. Producers:

- the execution loop (``on_start`` / ``on_complete`` / ``on_finish``)
- per-run live sinks fed by the subprocess readers
- the keyboard reader (``loop.add_reader``)
- the SIGWINCH handler and the tick timer (``loop.call_later``)

Only the render loop mutates state; ``snapshot()`` may be called from any
thread and sees each transition either fully applied or not at all.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from datetime import datetime
from typing import TextIO

from rich.console import Console
from rich.live import Live

from ...config import DEFAULT_LOG_LINES, DEFAULT_TICK_INTERVAL
from ...models import RunConfig, RunResult
from .channel import LiveSink, RunEventChannel
from .events import AllComplete, KeyInput, Origin, Resize, RunCompleted, RunEvent, RunStarted, Tick
from .keys import IS_WINDOWS, KeyReader
from .renderer import render_frame
from .state import Command, PresenterSnapshot, PresenterState
from .theme import DEFAULT_THEME, Theme

__all__ = ["InteractivePresenter"]

logger = logging.getLogger(__name__)


class InteractivePresenter:
    """Interactive run observer.

    Example:
        presenter = InteractivePresenter(config)
        ui = asyncio.create_task(presenter.run())
        await presenter.wait_ready()
        await executor.execute(config, presenter)
        await ui
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        theme: Theme = DEFAULT_THEME,
        console: Console | None = None,
        keep_open: bool = True,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        log_cap: int = DEFAULT_LOG_LINES,
        screen: bool = True,
        key_stream: TextIO | None = None,
    ) -> None:
        self.config = config
        self.theme = theme
        self.tick_interval = tick_interval
        self._console = console if console is not None else Console()
        self._screen = screen
        self._key_stream = key_stream

        self._channel = RunEventChannel()
        self._state = PresenterState(config, log_cap=log_cap, linger=keep_open)
        self._lock = threading.Lock()
        self._ready = asyncio.Event()
        self._tick_handle: asyncio.TimerHandle | None = None
        self._resize_installed = False
        self._current_run = 0
        self._stop_reason: Command | None = None

    # ------------------------------------------------------------------
    # Render loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run the render loop.

        Returns when the user quits, or when the session finishes and the
        view does not linger. Cancellation propagates.
        """
        loop = asyncio.get_running_loop()
        self._channel.bind(loop)
        self._send_resize()
        self._install_resize_handler(loop)

        try:
            with Live(
                render_frame(self._state, self.theme),
                console=self._console,
                screen=self._screen,
                auto_refresh=False,
                transient=False,
            ) as live, KeyReader(self._on_key, self._key_stream):
                self._channel.send(Tick(datetime.now()))
                self._schedule_tick(loop)
                self._ready.set()
                logger.debug("Render loop accepting events")

                self._stop_reason = await self._render_loop(live)
        finally:
            self._channel.close()
            if self._tick_handle is not None:
                self._tick_handle.cancel()
                self._tick_handle = None
            self._remove_resize_handler(loop)

        logger.debug(f"Render loop stopped: {self._stop_reason.value}")

    async def _render_loop(self, live: Live) -> Command:
        while True:
            command = self._apply(await self._channel.receive())

            # Coalesce bursts into one frame.
            while command is None:
                event = self._channel.receive_nowait()
                if event is None:
                    break
                command = self._apply(event)

            live.update(render_frame(self._state, self.theme), refresh=True)
            if command is not None:
                return command

    def _apply(self, event: RunEvent) -> Command | None:
        with self._lock:
            return self._state.apply(event)

    async def wait_ready(self) -> None:
        """Block until the render loop accepts events."""
        await self._ready.wait()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def stop_reason(self) -> Command | None:
        """Why the render loop stopped (None while running or if cancelled)."""
        return self._stop_reason

    def snapshot(self) -> PresenterSnapshot:
        with self._lock:
            return self._state.snapshot()

    # ------------------------------------------------------------------
    # Timer, keyboard and resize producers
    # ------------------------------------------------------------------

    def _schedule_tick(self, loop: asyncio.AbstractEventLoop) -> None:
        self._tick_handle = loop.call_later(self.tick_interval, self._on_tick, loop)

    def _on_tick(self, loop: asyncio.AbstractEventLoop) -> None:
        self._tick_handle = None
        if self._state.view.finished or self._channel.closed:
            return
        self._channel.send(Tick(datetime.now()))
        self._schedule_tick(loop)

    def _on_key(self, key: str) -> None:
        self._channel.send(KeyInput(key))

    def _send_resize(self) -> None:
        width, height = self._console.size
        self._channel.send(Resize(width, height))

    def _install_resize_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        if IS_WINDOWS or not hasattr(signal, "SIGWINCH"):
            return
        try:
            loop.add_signal_handler(signal.SIGWINCH, self._send_resize)
            self._resize_installed = True
        except (RuntimeError, ValueError) as e:
            # Not in the main thread
            logger.debug(f"Resize handler not installed: {e}")

    def _remove_resize_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._resize_installed:
            loop.remove_signal_handler(signal.SIGWINCH)
            self._resize_installed = False

    # ------------------------------------------------------------------
    # RunObserver
    # ------------------------------------------------------------------

    def on_start(self, run_id: int) -> None:
        self._current_run = run_id
        self._channel.send(RunStarted(run_id, datetime.now()))

    def on_complete(self, result: RunResult) -> None:
        self._channel.send(RunCompleted(result))

    def on_finish(self) -> None:
        self._channel.send(AllComplete())

    def get_live_sinks(self) -> tuple[LiveSink, LiveSink]:
        run_id = self._current_run
        return (
            LiveSink(self._channel, run_id, Origin.STDOUT),
            LiveSink(self._channel, run_id, Origin.STDERR),
        )
