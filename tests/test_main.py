"""Tests for command line parsing."""

from pathlib import Path

from ibswatch.__main__ import main, parse_args


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])

        assert args.config == Path("config.yaml")
        assert args.verbose is False
        assert args.console is None
        assert args.api_port is None

    def test_console_without_interval_is_keypress_mode(self):
        assert parse_args(["-o"]).console == 0

    def test_console_interval_and_port(self):
        args = parse_args(["-c", "/etc/ibswatch.yaml", "--console", "60", "--api-port", "8080", "-v"])

        assert args.config == Path("/etc/ibswatch.yaml")
        assert args.console == 60
        assert args.api_port == 8080
        assert args.verbose is True


class TestMain:
    def test_missing_config_fails(self, tmp_path):
        assert main(["-c", str(tmp_path / "missing.yaml")]) == 1
