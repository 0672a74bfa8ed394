"""Observer interface between the execution loop and the output formats."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..models import RunResult
from ..runtime.process_runner import OutputSink

__all__ = ["OutputSink", "RunObserver"]


@runtime_checkable
class RunObserver(Protocol):
    """Receives session lifecycle callbacks.

    Implemented by the plain, structured and interactive formats; the
    execution loop calls on_start/on_complete once per run, in order, then
    on_finish exactly once.
    """

    def on_start(self, run_id: int) -> None: ...

    def on_complete(self, result: RunResult) -> None: ...

    def on_finish(self) -> None: ...

    def get_live_sinks(self) -> tuple[OutputSink | None, OutputSink | None]: ...
