"""Sequential execution loop.

Drives N invocations of the ProcessRunner one at a time and reports each
lifecycle step to a RunObserver. Only cancellation ends the loop early; a
failed invocation is an ordinary RunResult.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

from ..models import RunConfig
from .process_runner import ProcessRunner

if TYPE_CHECKING:
    from ..ui.base import RunObserver

__all__ = [
    "Executor",
    "SequentialExecutor",
    "create_executor",
]

logger = logging.getLogger(__name__)


class Executor(Protocol):
    """Executes a session and reports to an observer."""

    async def execute(self, config: RunConfig, observer: RunObserver) -> None: ...

    def start(
        self, config: RunConfig, observer: RunObserver, *, name: str | None = None
    ) -> asyncio.Task[None]: ...


class _FinishOnce:
    """Sends on_finish() to an observer at most once."""

    def __init__(self, observer: RunObserver) -> None:
        self._observer = observer
        self.sent = False

    def __call__(self, *_: Any) -> None:
        if self.sent:
            return
        self.sent = True
        self._observer.on_finish()


class SequentialExecutor:
    """Runs invocations strictly in order, 1..times.

    Example:
        executor = SequentialExecutor()
        await executor.execute(config, observer)

        # or as a task of its own
        task = executor.start(config, observer)

    Raises asyncio.CancelledError when the calling task is cancelled; the
    observer always receives exactly one on_finish().
    """

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        self.runner = runner or ProcessRunner()

    async def execute(self, config: RunConfig, observer: RunObserver) -> None:
        await self._execute(config, observer, _FinishOnce(observer))

    def start(
        self, config: RunConfig, observer: RunObserver, *, name: str | None = None
    ) -> asyncio.Task[None]:
        """Run the session in a new task.

        A task cancelled before its first step never enters the coroutine,
        so on_finish() is also sent from the task's done callback.
        """
        finish = _FinishOnce(observer)
        task = asyncio.create_task(self._execute(config, observer, finish), name=name)
        task.add_done_callback(finish)
        return task

    async def _execute(self, config: RunConfig, observer: RunObserver, finish: _FinishOnce) -> None:
        try:
            for run_id in range(1, config.times + 1):
                # Raises here if a cancellation is already pending.
                await asyncio.sleep(0)

                observer.on_start(run_id)
                stdout_sink, stderr_sink = observer.get_live_sinks()
                result = await self.runner.run(config, run_id, stdout_sink, stderr_sink)
                observer.on_complete(result)

                if result.cancelled:
                    logger.info(f"Session cancelled during run {run_id}/{config.times}")
                    raise asyncio.CancelledError()
        finally:
            finish()


def create_executor(config: RunConfig, runner: ProcessRunner | None = None) -> Executor:
    """Select the executor for a configuration (sequential is the only mode)."""
    return SequentialExecutor(runner)
