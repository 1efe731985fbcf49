"""
Unit tests for configuration and the command line.
"""

import dataclasses

import pytest

from semanticd.config import Config
from semanticd.__main__ import build_parser, config_from_args


class TestConfig:
    """Tests for Config."""

    def test_defaults(self):
        config = Config()

        assert config.port == 3000
        assert config.host == "0.0.0.0"
        assert config.print_http_logs is False
        config.validate()

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            Config().port = 1

    def test_port_zero_allowed(self):
        Config(port=0).validate()

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 70000},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"buffer_size": 10},
        {"timeout": 0},
        {"keep_alive_timeout": 0},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            Config(**overrides).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SEMANTICD_PORT", "4100")
        monkeypatch.setenv("SEMANTICD_HOST", "127.0.0.1")
        monkeypatch.setenv("SEMANTICD_HTTP_LOGS", "yes")
        monkeypatch.setenv("SEMANTICD_LOG_LEVEL", "debug")
        monkeypatch.setenv("SEMANTICD_LOG_FORMAT", "JSON")

        config = Config.from_env()

        assert config.port == 4100
        assert config.host == "127.0.0.1"
        assert config.print_http_logs is True
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_from_env_defaults(self, monkeypatch):
        for name in ("SEMANTICD_PORT", "SEMANTICD_HOST", "SEMANTICD_HTTP_LOGS"):
            monkeypatch.delenv(name, raising=False)

        assert Config.from_env().port == 3000


class TestCommandLine:
    """Tests for the serve subcommand's argument handling."""

    def test_serve_flags(self):
        args = build_parser().parse_args(
            ["serve", "--port", "4000", "-l", "--host", "127.0.0.1", "--log-format", "json"]
        )

        config = config_from_args(args, base=Config())

        assert config.port == 4000
        assert config.print_http_logs is True
        assert config.host == "127.0.0.1"
        assert config.log_format == "json"

    def test_flags_override_base_only_when_given(self):
        args = build_parser().parse_args(["serve"])
        base = Config(port=5000, print_http_logs=True)

        assert config_from_args(args, base=base) == base

    def test_workers(self):
        args = build_parser().parse_args(["serve", "--workers", "2"])

        config = config_from_args(args, base=Config())

        assert config.max_workers == 2
        assert config.min_workers == 2
        config.validate()

    def test_log_level_case_insensitive(self):
        args = build_parser().parse_args(["serve", "--log-level", "debug"])

        assert args.log_level == "DEBUG"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_unknown_engine(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["serve", "--engine", "cobol"])
