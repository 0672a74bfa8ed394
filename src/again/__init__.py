"""again - 重复执行命令并实时展示每次运行的结果。

环境变量:
    AGAIN_LOG_DEBUG: 调试日志写入临时文件 (默认 false)
    AGAIN_KEEP_UI: 会话结束后保留交互界面 (默认 true)
    AGAIN_TICK_INTERVAL: 耗时刷新间隔 (默认 0.1 秒)

用法:
    again -n 5 -- make test
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
