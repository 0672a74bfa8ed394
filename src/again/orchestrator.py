"""会话编排与管理模块。

提供：
- SessionRegistry: 活动会话的登记、查询与批量取消（供信号处理使用）
- Orchestrator: 校验配置、选择观察者，并按输出格式运行会话

交互模式下，界面渲染循环与执行循环并发运行：
执行循环必须等待界面就绪后才开始，避免早期事件丢失；
用户退出界面时取消执行循环，这是正常停止而不是错误。
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .config import Settings, get_settings
from .models import RunConfig, validate_run_config
from .runtime import Executor, ProcessRunner, create_executor
from .ui import RunObserver, create_observer
from .ui.tui import InteractivePresenter

__all__ = ["Orchestrator", "SessionInfo", "SessionRegistry"]

logger = logging.getLogger(__name__)

ObserverFactory = Callable[[RunConfig, Settings], RunObserver]


@dataclass
class SessionInfo:
    """活动会话的信息。

    Attributes:
        session_id: 唯一会话标识符
        command_line: 被重复执行的命令（用于日志）
        task: 运行会话的 asyncio Task
        created_at: 创建时间
    """

    session_id: str
    command_line: str
    task: asyncio.Task
    created_at: datetime = field(default_factory=datetime.now)

    def __repr__(self) -> str:
        elapsed = (datetime.now() - self.created_at).total_seconds()
        status = "running" if not self.task.done() else "done"
        return (
            f"SessionInfo(id={self.session_id[:8]}..., "
            f"command={self.command_line!r}, "
            f"status={status}, "
            f"elapsed={elapsed:.1f}s)"
        )


class SessionRegistry:
    """活动会话的注册表。

    所有操作都是同步的，由调用方保证在同一个事件循环中调用。

    Example:
        ```python
        registry = SessionRegistry()
        task = asyncio.create_task(orchestrator.execute(config))
        registry.register(registry.generate_session_id(), config.command_line, task)

        # SIGINT 时
        registry.cancel_all()
        ```
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionInfo] = {}

    @staticmethod
    def generate_session_id() -> str:
        return str(uuid.uuid4())

    def register(self, session_id: str, command_line: str, task: asyncio.Task) -> None:
        """登记新会话。

        Raises:
            ValueError: 如果 session_id 已存在
        """
        if session_id in self._sessions:
            raise ValueError(f"Session {session_id} already registered")

        info = SessionInfo(session_id=session_id, command_line=command_line, task=task)
        self._sessions[session_id] = info
        logger.debug(f"Registered session: {info}")

    def unregister(self, session_id: str) -> bool:
        info = self._sessions.pop(session_id, None)
        if info is None:
            return False
        logger.debug(f"Unregistered session: {info}")
        return True

    def get(self, session_id: str) -> Optional[SessionInfo]:
        return self._sessions.get(session_id)

    def cancel_all(self) -> int:
        """取消所有活动会话。

        Returns:
            成功发起取消的会话数量
        """
        cancelled = 0
        for info in list(self._sessions.values()):
            if not info.task.done():
                info.task.cancel()
                logger.info(f"Cancelled session: {info}")
                cancelled += 1
        return cancelled

    def has_active_sessions(self) -> bool:
        return any(not info.task.done() for info in self._sessions.values())

    @property
    def active_count(self) -> int:
        return sum(1 for info in self._sessions.values() if not info.task.done())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions


class Orchestrator:
    """运行一个完整会话。

    Example:
        ```python
        orchestrator = Orchestrator(registry)
        observer = await orchestrator.execute(config)
        ```

    Attributes:
        registry: 会话注册表（信号处理通过它取消会话）
        settings: 环境配置
    """

    def __init__(
        self,
        registry: SessionRegistry | None = None,
        *,
        settings: Settings | None = None,
        runner: ProcessRunner | None = None,
        observer_factory: ObserverFactory | None = None,
    ) -> None:
        self.registry = registry if registry is not None else SessionRegistry()
        self.settings = settings if settings is not None else get_settings()
        self._runner = runner
        self._observer_factory = observer_factory or create_observer

    async def execute(self, config: RunConfig) -> RunObserver:
        """校验配置并运行会话。

        Returns:
            本次会话使用的观察者（调用方可据此输出摘要）

        Raises:
            ConfigError: 配置无效（在任何子进程启动之前）
            asyncio.CancelledError: 会话被取消（信号或外部取消）
        """
        validate_run_config(config)

        observer = self._observer_factory(config, self.settings)
        runner = self._runner or ProcessRunner(capture_limit=self.settings.capture_limit)
        executor = create_executor(config, runner)

        session_id = self.registry.generate_session_id()
        task = asyncio.current_task()
        if task is not None:
            self.registry.register(session_id, config.command_line, task)

        logger.info(
            f"Session started: command={config.command_line!r} times={config.times} "
            f"format={config.output_format.value}"
        )
        try:
            if isinstance(observer, InteractivePresenter):
                await self._execute_interactive(config, observer, executor)
            else:
                await executor.execute(config, observer)
        finally:
            self.registry.unregister(session_id)

        logger.info("Session finished")
        return observer

    async def _execute_interactive(
        self,
        config: RunConfig,
        presenter: InteractivePresenter,
        executor: Executor,
    ) -> None:
        """界面与执行循环并发运行，执行循环在界面就绪后才开始。"""
        ui_task = asyncio.create_task(presenter.run(), name="again-presenter")
        ready_task = asyncio.create_task(presenter.wait_ready())
        exec_task: asyncio.Task | None = None

        try:
            await asyncio.wait({ui_task, ready_task}, return_when=asyncio.FIRST_COMPLETED)
            if not ready_task.done():
                # 界面在就绪前就结束了（启动失败）
                ui_task.result()
                return

            exec_task = executor.start(config, presenter, name="again-executor")
            await asyncio.wait({ui_task, exec_task}, return_when=asyncio.FIRST_COMPLETED)

            if ui_task.done() and not exec_task.done():
                logger.info("Interactive view closed by user, stopping session")
                exec_task.cancel()
                await asyncio.wait({exec_task})
                ui_task.result()
                return

            exec_task.result()
            # 会话结束，等待用户退出（或不保留界面时立即返回）
            await ui_task
        finally:
            pending = [t for t in (exec_task, ready_task, ui_task) if t is not None and not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
