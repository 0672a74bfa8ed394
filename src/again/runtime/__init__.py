"""Runtime module for subprocess execution.

This module provides isolated process execution with bounded output
capture, reliable process-group termination and the sequential execution
loop.
"""

from __future__ import annotations

from .capture import BoundedBuffer, truncation_notice
from .executor import Executor, SequentialExecutor, create_executor
from .process_runner import OutputSink, ProcessRunner, build_argv

__all__ = [
    "BoundedBuffer",
    "Executor",
    "OutputSink",
    "ProcessRunner",
    "SequentialExecutor",
    "build_argv",
    "create_executor",
    "truncation_notice",
]
