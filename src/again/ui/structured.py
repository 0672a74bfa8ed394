"""结构化 (JSON) 输出格式。

会话期间只缓存结果，结束时输出一个 JSON 文档:

    {
      "results": [
        {"id": 1, "exit_code": 0, "success": true, "duration_ms": 12, "stdout": "hi\\n"}
      ]
    }

空的 stdout/stderr/error 字段省略；silent 模式下不输出 stdout/stderr。
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import TextIO

from pydantic import BaseModel, ConfigDict

from ..models import RunConfig, RunResult, Verbosity

__all__ = ["ResultDocument", "ResultRecord", "StructuredFormatter"]

logger = logging.getLogger(__name__)


class ResultRecord(BaseModel):
    """单次运行的 JSON 记录。"""

    model_config = ConfigDict(frozen=True)

    id: int
    exit_code: int
    success: bool
    duration_ms: int
    stdout: str | None = None
    stderr: str | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, result: RunResult, include_output: bool = True) -> "ResultRecord":
        stdout = result.stdout.decode("utf-8", errors="replace") if include_output else ""
        stderr = result.stderr.decode("utf-8", errors="replace") if include_output else ""
        return cls(
            id=result.run_id,
            exit_code=result.exit_code,
            success=result.success,
            duration_ms=result.duration_ms,
            stdout=stdout or None,
            stderr=stderr or None,
            error=result.error or None,
        )


class ResultDocument(BaseModel):
    """会话结束时输出的完整文档。"""

    results: list[ResultRecord]


class StructuredFormatter:
    """结构化观察者，不提供实时输出。"""

    def __init__(self, config: RunConfig, *, out: TextIO | None = None) -> None:
        self.config = config
        self._out = out
        self._results: list[RunResult] = []
        self._lock = threading.Lock()

    def get_live_sinks(self) -> tuple[None, None]:
        return None, None

    def on_start(self, run_id: int) -> None:
        # 结构化格式不输出进度
        pass

    def on_complete(self, result: RunResult) -> None:
        with self._lock:
            self._results.append(result)

    def on_finish(self) -> None:
        out = self._out if self._out is not None else sys.stdout
        out.write(self.render() + "\n")
        out.flush()

    def render(self) -> str:
        """把已缓存的结果渲染为 JSON 文本。"""
        include_output = self.config.verbosity != Verbosity.SILENT
        with self._lock:
            records = [ResultRecord.from_result(r, include_output) for r in self._results]
        document = ResultDocument(results=records)
        logger.debug(f"Rendering {len(records)} result(s) as JSON")
        return document.model_dump_json(indent=2, exclude_none=True)
