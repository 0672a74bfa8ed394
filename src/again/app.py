"""again 应用入口。

包含会话生命周期管理和主入口点。
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import sys
from collections.abc import Sequence

from .cli import build_parser, parse_args
from .config import Settings, get_settings
from .errors import ConfigError
from .models import OutputFormat, RunConfig, Verbosity, validate_run_config
from .orchestrator import Orchestrator, SessionRegistry
from .signal_manager import FORCE_EXIT_CODE, SignalManager
from .ui.tui import InteractivePresenter, PresenterSnapshot

__all__ = ["main", "run_session"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


async def run_session(config: RunConfig, settings: Settings | None = None) -> int:
    """运行一个会话并返回进程退出码。

    信号管理器把 SIGINT / SIGTERM 转换为会话取消：
    - 会话被取消: 输出 "Execution cancelled"，退出码 0
    - 双击 SIGINT: 退出码 130

    Raises:
        ConfigError: 配置无效
    """
    settings = settings or get_settings()
    registry = SessionRegistry()
    signal_manager = SignalManager(registry, double_tap_window=settings.sigint_double_tap_window)
    orchestrator = Orchestrator(registry, settings=settings)

    session: asyncio.Task | None = None
    shutdown_watcher: asyncio.Task | None = None

    async def _watch_shutdown() -> None:
        """SIGTERM 或强制退出时取消会话（即使它尚未登记）。"""
        await signal_manager.wait_for_shutdown()
        if session is not None and not session.done():
            logger.info("Shutdown requested, cancelling session task")
            session.cancel()

    try:
        await signal_manager.start()
        session = asyncio.create_task(orchestrator.execute(config), name="again-session")
        shutdown_watcher = asyncio.create_task(_watch_shutdown(), name="shutdown-watcher")
        await asyncio.wait({session})
    finally:
        if session is not None and not session.done():
            session.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await session

        if shutdown_watcher is not None and not shutdown_watcher.done():
            shutdown_watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_watcher

        await signal_manager.stop()

    if session.cancelled():
        print("\n\nExecution cancelled", file=sys.stderr)
        if signal_manager.is_force_exit:
            logger.warning(f"Force exit requested, terminating with exit code {FORCE_EXIT_CODE}")
            return FORCE_EXIT_CODE
        return 0

    observer = session.result()
    if isinstance(observer, InteractivePresenter):
        _print_summary(observer.snapshot())
    return 0


def _print_summary(snapshot: PresenterSnapshot) -> None:
    """交互界面关闭后（备用屏幕已恢复）在 stderr 输出摘要。"""
    total = len(snapshot.runs)
    line = f"{snapshot.succeeded}/{total} runs succeeded"
    if snapshot.completed < total:
        line += f" ({snapshot.completed}/{total} completed before exit)"
    print(line, file=sys.stderr)


def _configure_logging(settings: Settings, config: RunConfig) -> None:
    """配置日志输出。

    - AGAIN_LOG_DEBUG: DEBUG 日志输出到临时文件
    - 否则输出到 stderr；verbose 时为 INFO，其余为 WARNING
      （交互模式下日志会破坏画面，因此保持 WARNING）
    """
    log_handlers: list[logging.Handler] = []

    if settings.log_debug and settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        if config.verbosity == Verbosity.VERBOSE and config.output_format != OutputFormat.INTERACTIVE:
            log_level = logging.INFO
        else:
            log_level = logging.WARNING

    # root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers, force=True)
    # 只对 again 命名空间启用详细日志
    logging.getLogger("again").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    settings = get_settings()
    parser = build_parser()
    args = sys.argv[1:] if argv is None else list(argv)

    try:
        config = validate_run_config(parse_args(args, parser))
    except ConfigError as e:
        print(f"Error: {e}\n", file=sys.stderr)
        parser.print_usage(sys.stderr)
        sys.exit(1)

    if config.output_format == OutputFormat.INTERACTIVE and not sys.stdout.isatty():
        # 非终端（管道/重定向）无法显示交互界面
        config = dataclasses.replace(config, output_format=OutputFormat.PLAIN)

    _configure_logging(settings, config)
    if settings.log_file:
        logger.debug(f"Settings: {settings}")

    sys.exit(asyncio.run(run_session(config, settings)))


if __name__ == "__main__":
    main()
