"""纯文本输出格式。

命令自身的输出直接透传到当前进程的 stdout/stderr，
运行边界与结果以单行形式写入 stderr。
"""

from __future__ import annotations

import sys
from typing import BinaryIO, TextIO

from ..models import RunConfig, RunResult, Verbosity
from ..utils.durations import format_duration

__all__ = ["PlainFormatter", "StreamSink"]


class StreamSink:
    """将字节写入二进制流并立即 flush。"""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def write(self, data: bytes) -> int:
        written = self._stream.write(data)
        self._stream.flush()
        return written if written is not None else len(data)


class PlainFormatter:
    """纯文本观察者。

    Example:
        formatter = PlainFormatter(config)
        await executor.execute(config, formatter)

    输出示例（stderr）:
        [ Run 1 ]
        [ Run 1 completed in 12ms - SUCCESS ]
        [ Run 2 ]
        [ Run 2 completed in 8ms - FAILED: exit code 3, error: exit status 3 ]
        2/3 runs succeeded
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        out: BinaryIO | None = None,
        err: BinaryIO | None = None,
        log: TextIO | None = None,
    ) -> None:
        self.config = config
        self._out = out
        self._err = err
        self._log = log
        self._completed = 0
        self._succeeded = 0

    @property
    def log(self) -> TextIO:
        return self._log if self._log is not None else sys.stderr

    @property
    def silent(self) -> bool:
        return self.config.verbosity == Verbosity.SILENT

    @property
    def verbose(self) -> bool:
        return self.config.verbosity == Verbosity.VERBOSE

    def get_live_sinks(self) -> tuple[StreamSink | None, StreamSink | None]:
        """透传命令输出（silent 模式下不透传）。"""
        if self.silent:
            return None, None
        out = self._out if self._out is not None else sys.stdout.buffer
        err = self._err if self._err is not None else sys.stderr.buffer
        return StreamSink(out), StreamSink(err)

    def on_start(self, run_id: int) -> None:
        if self.silent:
            return
        self._emit(f"[ Run {run_id} ]")

    def on_complete(self, result: RunResult) -> None:
        self._completed += 1
        if result.success:
            self._succeeded += 1

        line = f"[ Run {result.run_id} completed in {format_duration(result.duration)}"
        if result.success:
            line += " - SUCCESS"
        elif result.error:
            line += f" - FAILED: exit code {result.exit_code}, error: {result.error}"
        else:
            line += f" - FAILED: exit code {result.exit_code}"

        if self.verbose:
            line += (
                f" (started {result.started_at.strftime('%H:%M:%S.%f')[:-3]}, "
                f"finished {result.finished_at.strftime('%H:%M:%S.%f')[:-3]})"
            )
        self._emit(line + " ]")

    def on_finish(self) -> None:
        if self.silent:
            return
        self._emit(f"{self._succeeded}/{self.config.times} runs succeeded")

    def _emit(self, line: str) -> None:
        self.log.write(line + "\n")
        self.log.flush()
