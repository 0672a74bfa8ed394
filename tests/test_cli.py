"""命令行参数解析测试。"""

from __future__ import annotations

import pytest

from again import __version__
from again.cli import build_parser, parse_args, split_command
from again.errors import ConfigError
from again.models import OutputFormat, Verbosity, validate_run_config


class TestSplitCommand:
    def test_split_at_double_dash(self):
        assert split_command(["-n", "3", "--", "ls", "-la"]) == (["-n", "3"], ["ls", "-la"])

    def test_only_first_double_dash(self):
        assert split_command(["--", "echo", "--", "x"]) == ([], ["echo", "--", "x"])

    def test_no_double_dash(self):
        assert split_command(["-n", "2", "date"]) == (["-n", "2", "date"], [])


class TestParseArgs:
    def test_defaults(self):
        config = parse_args(["--", "echo hi"])
        assert config.command == ("echo hi",)
        assert config.times == 1
        assert config.verbosity == Verbosity.NORMAL
        assert config.output_format == OutputFormat.INTERACTIVE
        assert config.timeout is None

    def test_all_flags(self):
        config = parse_args(["-n", "5", "--json", "-v", "silent", "--timeout", "1m30s", "--", "ls", "-la"])
        assert config.command == ("ls", "-la")
        assert config.times == 5
        assert config.verbosity == Verbosity.SILENT
        assert config.output_format == OutputFormat.STRUCTURED
        assert config.timeout == 90.0

    @pytest.mark.parametrize(
        ("flag", "expected"),
        [("--json", OutputFormat.STRUCTURED), ("--raw", OutputFormat.PLAIN), ("--tui", OutputFormat.INTERACTIVE)],
    )
    def test_format_flags(self, flag: str, expected: OutputFormat):
        assert parse_args([flag, "--", "true"]).output_format == expected

    def test_format_flags_exclusive(self):
        with pytest.raises(SystemExit):
            parse_args(["--json", "--raw", "--", "true"])

    def test_command_without_double_dash(self):
        assert parse_args(["--times", "2", "date"]).command == ("date",)

    def test_command_arguments_not_parsed_as_flags(self):
        config = parse_args(["-n", "2", "--", "grep", "-n", "--json", "x"])
        assert config.command == ("grep", "-n", "--json", "x")
        assert config.times == 2
        assert config.output_format == OutputFormat.INTERACTIVE

    def test_invalid_times(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_args(["-n", "many", "--", "true"])
        assert exc_info.value.field == "times"

    def test_invalid_timeout(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_args(["--timeout", "soon", "--", "true"])
        assert exc_info.value.field == "timeout"

    @pytest.mark.parametrize("value", ["nan", "inf"])
    def test_non_finite_timeout_rejected(self, value: str):
        config = parse_args(["--timeout", value, "--", "true"])
        with pytest.raises(ConfigError) as exc_info:
            validate_run_config(config)
        assert exc_info.value.field == "timeout"

    def test_invalid_verbosity(self):
        with pytest.raises(ConfigError):
            parse_args(["-v", "chatty", "--", "true"])

    def test_empty_command_is_left_to_validation(self):
        assert parse_args(["-n", "2"]).command == ()

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out
