"""信号管理模块。

将 OS 信号转换为会话级别的操作：
- SIGINT: 取消活动会话（正在运行的子进程进程组被终止，循环停止）
- 双击 SIGINT（在 AGAIN_SIGINT_DOUBLE_TAP_WINDOW 窗口内）: 强制退出 (130)
- SIGTERM: 取消所有会话并请求关闭
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Optional

from .config import get_settings
from .orchestrator import SessionRegistry

__all__ = ["FORCE_EXIT_CODE", "SignalManager"]

logger = logging.getLogger(__name__)

FORCE_EXIT_CODE = 130


class SignalManager:
    """信号管理器。

    Example:
        ```python
        registry = SessionRegistry()
        signal_manager = SignalManager(registry)

        async def main():
            await signal_manager.start()
            try:
                await orchestrator.execute(config)
            finally:
                await signal_manager.stop()
        ```

    Attributes:
        registry: 会话注册表
        double_tap_window: 双击退出窗口时间（秒）
    """

    def __init__(
        self,
        registry: SessionRegistry,
        double_tap_window: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.double_tap_window = (
            double_tap_window
            if double_tap_window is not None
            else get_settings().sigint_double_tap_window
        )

        # 上一次 SIGINT 的时间，None 表示还没有收到过
        self._last_sigint: Optional[float] = None
        self._force_exit = False
        self._shutdown = asyncio.Event()
        self._previous_handler = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_force_exit(self) -> bool:
        """是否请求强制退出（双击 SIGINT）。"""
        return self._force_exit

    async def start(self) -> None:
        """安装 SIGINT / SIGTERM 处理器，必须在事件循环中调用。"""
        if self._loop is not None:
            logger.warning("SignalManager already running")
            return

        loop = self._loop = asyncio.get_running_loop()
        if sys.platform == "win32":
            # signal.signal() 的处理器运行在主线程，转交给事件循环
            self._previous_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: loop.call_soon_threadsafe(self._handle_sigint),
            )
        else:
            loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)
        logger.debug(f"Signal handlers installed (double_tap_window={self.double_tap_window}s)")

    async def stop(self) -> None:
        """恢复原始信号处理器。"""
        loop, self._loop = self._loop, None
        if loop is None:
            return

        if sys.platform == "win32":
            if self._previous_handler is not None:
                signal.signal(signal.SIGINT, self._previous_handler)
        else:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)
        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> None:
        """等待 SIGTERM、无会话时的 SIGINT 或强制退出。"""
        await self._shutdown.wait()

    def _cancel_sessions(self, reason: str) -> int:
        count = self.registry.cancel_all()
        if count:
            logger.info(f"{reason}: cancelled {count} session(s)")
        return count

    def _handle_sigint(self) -> None:
        """处理 SIGINT。

        - 双击窗口内的第二次 SIGINT：强制退出（实际退出由 app 在清理后执行）
        - 有活动会话：取消会话
        - 没有活动会话：请求关闭
        """
        now = time.monotonic()
        previous, self._last_sigint = self._last_sigint, now

        if previous is not None and now - previous < self.double_tap_window:
            logger.warning("Double SIGINT detected, forcing exit")
            self._force_exit = True
            self._cancel_sessions("Force exit")
            self._shutdown.set()
            return

        if self._cancel_sessions("SIGINT"):
            logger.info(f"Press Ctrl+C again within {self.double_tap_window}s to force exit.")
        else:
            logger.info("SIGINT received, no active session, requesting shutdown")
            self._shutdown.set()

    def _handle_sigterm(self) -> None:
        logger.info("SIGTERM received, shutting down")
        self._cancel_sessions("SIGTERM")
        self._shutdown.set()
