"""
Unit tests for the command-line entry point.
"""

import os

import pytest

from accesslog.__main__ import build_configs, build_parser, main
from accesslog.formatting import LogFormat


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith(("ACCESS_LOG_", "HTTP_")):
            monkeypatch.delenv(name)


class TestBuildConfigs:
    """CLI flags override environment, environment overrides defaults."""

    def test_defaults(self):
        log_config, server_config = build_configs(build_parser().parse_args([]))

        assert log_config.log_path == "/var/log/apache2/access.log"
        assert log_config.compress is True
        assert server_config.port == 8080

    def test_flags(self):
        args = build_parser().parse_args([
            "--log-path", "/tmp/a.log",
            "--format", "combined",
            "--max-size", "5",
            "--max-backups", "0",
            "--max-age", "7",
            "--no-compress",
            "--secure-interval", "2.5",
            "--port", "9090",
            "-w", "3",
        ])

        log_config, server_config = build_configs(args)

        assert log_config.log_path == "/tmp/a.log"
        assert log_config.log_format is LogFormat.COMBINED
        assert log_config.max_size_mb == 5
        assert log_config.max_backups == 0
        assert log_config.max_age_days == 7
        assert log_config.compress is False
        assert log_config.secure_interval == 2.5
        assert server_config.port == 9090
        assert server_config.max_workers == 3

    def test_flag_beats_env(self, monkeypatch):
        monkeypatch.setenv("ACCESS_LOG_FORMAT", "combined")
        monkeypatch.setenv("ACCESS_LOG_PATH", "/srv/env.log")

        log_config, _ = build_configs(build_parser().parse_args(["--format", "common"]))

        assert log_config.log_format is LogFormat.COMMON
        assert log_config.log_path == "/srv/env.log"

    def test_unknown_format_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--format", "json"])


class TestMain:
    """Startup failures exit with status 1."""

    def test_log_setup_failure(self, tmp_path, monkeypatch):
        def denied(*args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(os, "makedirs", denied)

        assert main(["--log-path", str(tmp_path / "nope" / "access.log")]) == 1

    def test_invalid_config(self, tmp_path):
        assert main(["--log-path", str(tmp_path / "access.log"), "--max-backups", "-1"]) == 1

    def test_invalid_env(self, monkeypatch):
        monkeypatch.setenv("ACCESS_LOG_COMPRESS", "sometimes")

        assert main([]) == 1
