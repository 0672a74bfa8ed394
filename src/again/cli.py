"""命令行参数解析。

用法:
    again [-n TIMES] [--json | --raw | --tui] [-v LEVEL] [--timeout DURATION] -- command...

``--`` 之后的所有参数都属于被执行的命令；单个参数会交给 shell 执行
（支持管道、通配符），多个参数则按字面执行。
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from . import __version__
from .errors import ConfigError
from .models import OutputFormat, RunConfig, Verbosity
from .utils.durations import parse_duration

__all__ = ["build_parser", "parse_args", "split_command"]


def split_command(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """在第一个 ``--`` 处分割为 (选项, 命令)。"""
    args = list(argv)
    if "--" in args:
        index = args.index("--")
        return args[:index], args[index + 1:]
    return args, []


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="again",
        usage="again [flags] -- <command>",
        description="again - run a command multiple times",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  again -n 5 -- curl -s https://example.com\n"
            "  again -n 3 --json -- 'make test | tail -1'\n"
            "  again -n 10 --timeout 2s --raw -- ./flaky.sh"
        ),
    )
    parser.add_argument(
        "-n",
        "--times",
        default="1",
        metavar="TIMES",
        help="Number of times to run the command (default: 1)",
    )

    formats = parser.add_mutually_exclusive_group()
    formats.add_argument(
        "--json",
        dest="output_format",
        action="store_const",
        const=OutputFormat.STRUCTURED,
        help="Print one JSON document with every result",
    )
    formats.add_argument(
        "--raw",
        dest="output_format",
        action="store_const",
        const=OutputFormat.PLAIN,
        help="Stream command output with one status line per run",
    )
    formats.add_argument(
        "--tui",
        dest="output_format",
        action="store_const",
        const=OutputFormat.INTERACTIVE,
        help="Interactive terminal view (default)",
    )

    parser.add_argument(
        "-v",
        "--verbosity",
        default=Verbosity.NORMAL.value,
        metavar="LEVEL",
        help="Verbosity level: silent | normal | verbose (default: normal)",
    )
    parser.add_argument(
        "--timeout",
        default=None,
        metavar="DURATION",
        help="Kill a run that takes longer than this (e.g. 500ms, 2s, 1m30s; 0 = none)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("command", nargs="*", help=argparse.SUPPRESS)
    return parser


def parse_args(
    argv: Sequence[str],
    parser: argparse.ArgumentParser | None = None,
) -> RunConfig:
    """把命令行参数转换为 RunConfig。

    只做类型转换；范围检查由 validate_run_config 完成。

    Raises:
        ConfigError: 参数无法转换（次数不是整数、时长格式错误等）
    """
    parser = parser or build_parser()
    options, command = split_command(argv)
    ns = parser.parse_args(options)

    try:
        times = int(ns.times)
    except ValueError:
        raise ConfigError("times", f"times must be an integer, got {ns.times!r}") from None

    timeout: float | None = None
    if ns.timeout is not None:
        try:
            timeout = parse_duration(ns.timeout)
        except ValueError as e:
            raise ConfigError("timeout", f"invalid timeout {ns.timeout!r}: {e}") from None

    return RunConfig(
        command=tuple(ns.command) + tuple(command),
        times=times,
        verbosity=Verbosity.from_string(ns.verbosity),
        output_format=ns.output_format or OutputFormat.INTERACTIVE,
        timeout=timeout,
    )
