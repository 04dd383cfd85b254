from __future__ import annotations

import io
import json
import logging as py_logging
from contextlib import redirect_stderr
from pathlib import Path

import pytest

from splitmux import cli
from splitmux.config import AppConfig
from splitmux.errors import ExitCode, SplitMuxError


def test_cli_help_lists_subcommands_and_global_flags() -> None:
    help_text = cli.build_parser().format_help()

    for token in ("host", "check", "config", "--log-level", "--log-file"):
        assert token in help_text


def test_missing_subcommand_returns_usage_error() -> None:
    assert cli.main([]) == 2


def test_invalid_log_level_is_rejected() -> None:
    assert cli.main(["--log-level", "LOUD", "config"]) == 2


def test_check_reports_allowed_shell(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["check", "--shell", "/bin/bash", "--cwd", str(tmp_path), "--platform", "linux"])

    assert code == 0
    assert capsys.readouterr().out.strip() == "allowed"


def test_check_reports_rejection_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["check", "--shell", "C:\\evil.exe", "--cwd", str(tmp_path), "--platform", "win32"])

    assert code == int(ExitCode.VALIDATION_ERROR)
    assert capsys.readouterr().out.startswith("SHELL_NOT_ALLOWED: ")


def test_check_applies_boundary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    boundary = tmp_path / "a" / "b" / "workspace"
    outside = tmp_path / "z"
    boundary.mkdir(parents=True)
    outside.mkdir()

    code = cli.main(
        ["check", "--shell", "sh", "--cwd", str(outside), "--boundary", str(boundary), "--platform", "linux"]
    )

    assert code == int(ExitCode.VALIDATION_ERROR)
    assert capsys.readouterr().out.startswith("CWD_OUTSIDE_BOUNDARY: ")


def test_check_with_invalid_boundary_is_reported_to_stderr(tmp_path: Path) -> None:
    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(["check", "--shell", "sh", "--cwd", str(tmp_path), "--boundary", str(tmp_path / "missing")])

    assert code == int(ExitCode.VALIDATION_ERROR)
    assert "Pass an existing directory to --boundary." in stream.getvalue()


def test_config_prints_resolved_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "config.toml"
    path.write_text("cols = 132\n", encoding="utf-8")

    code = cli.main(["config", "--config", str(path)])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["cols"] == 132


def test_host_subcommand_delegates_to_runner(tmp_path: Path) -> None:
    seen: dict[str, object] = {}

    def runner(**kwargs: object) -> int:
        seen.update(kwargs)
        return 0

    log_file = tmp_path / "host.log"
    code = cli.main(["--log-level", "warning", "--log-file", str(log_file), "host"], host_runner=runner)

    assert code == 0
    assert seen == {"log_level": "WARN", "log_file": log_file}


def test_log_level_defaults_to_configured_level(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: dict[str, object] = {}

    def runner(**kwargs: object) -> int:
        seen.update(kwargs)
        return 0

    monkeypatch.setattr(cli, "load_config", lambda _path=None: AppConfig(log_level="DEBUG"))
    code = cli.main(["--log-file", str(tmp_path / "host.log"), "host"], host_runner=runner)

    assert code == 0
    assert seen["log_level"] == "DEBUG"


def test_config_file_log_level_applies_to_config_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "config.toml"
    path.write_text('log_level = "error"\n', encoding="utf-8")

    assert cli.main(["--log-file", str(tmp_path / "cli.log"), "config", "--config", str(path)]) == 0

    assert json.loads(capsys.readouterr().out)["log_level"] == "ERROR"
    assert py_logging.getLogger("splitmux").level == py_logging.ERROR


def test_handled_error_is_reported_with_hint(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(_namespace: object) -> int:
        raise SplitMuxError("Config unreadable", code=ExitCode.CONFIG_ERROR, hint="Fix the TOML file.")

    monkeypatch.setattr(cli, "run_config", fail)
    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(["config"])

    assert code == int(ExitCode.CONFIG_ERROR)
    assert "Fix the TOML file." in stream.getvalue()


def test_unexpected_error_returns_runtime_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(_namespace: object) -> int:
        raise RuntimeError("boom")

    monkeypatch.setattr(cli, "run_config", fail)
    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(["config"])

    assert code == int(ExitCode.RUNTIME_ERROR)
    assert "Inspect logs" in stream.getvalue()
