from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest
from pydantic import ValidationError

from splitmux.config import (
    AppConfig,
    default_shell,
    load_config,
    recent_projects,
    remember_project,
    save_config,
)
from splitmux.models import Project


def test_load_defaults_when_config_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SPLITMUX_SHELL", raising=False)
    cfg = load_config(tmp_path / "config.toml")

    assert cfg.kill_timeout_ms == 500
    assert cfg.restart_margin_ms == 100
    assert cfg.resize_debounce_ms == 150
    assert (cfg.cols, cfg.rows) == (80, 24)
    assert cfg.kill_timeout == 0.5
    assert cfg.restart_margin == pytest.approx(0.1)
    assert cfg.recent_projects == []


def test_default_shell_follows_platform() -> None:
    assert default_shell("win32") == "powershell.exe"
    assert default_shell("linux") == "bash"
    assert default_shell("darwin") == "bash"


def test_config_roundtrip(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SPLITMUX_SHELL", raising=False)
    path = tmp_path / "nested" / "config.toml"
    original = AppConfig(
        shell="/bin/zsh",
        shell_args=["-l", 'say "hi"'],
        boundary_root="C:\\Users\\dev\\work",
        cols=132,
        rows=43,
        kill_timeout_ms=800,
        restart_margin_ms=50,
        resize_debounce_ms=0,
        scrollback_limit=1000,
        log_level="DEBUG",
        host_command=["/usr/bin/python3", "-m", "splitmux.host"],
        startup_command="claude --resume",
        auto_start=True,
        auto_start_delay_ms=250,
        recent_projects=[{"name": "api", "path": "/repos/api"}],
    )

    save_config(original, path)
    loaded = load_config(path)

    assert loaded == original


@pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
def test_saved_config_is_private(tmp_path: Path) -> None:
    path = save_config(AppConfig(), tmp_path / "config.toml")

    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_invalid_values_fall_back_per_field(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SPLITMUX_SHELL", raising=False)
    path = tmp_path / "config.toml"
    path.write_text(
        "\n".join(
            [
                'shell = "   "',
                'shell_args = ["-l", 3]',
                "cols = 1",
                "rows = 50",
                'kill_timeout_ms = "fast"',
                "resize_debounce_ms = true",
                'log_level = "warning"',
                'recent_projects = "not json"',
                "auto_start = 1",
                "auto_start_delay_ms = -5",
            ]
        ),
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert cfg.shell == default_shell()
    assert cfg.shell_args == ["-l"]
    assert cfg.cols == 80
    assert cfg.rows == 50
    assert cfg.kill_timeout_ms == 500
    assert cfg.resize_debounce_ms == 150
    assert cfg.log_level == "INFO"
    assert cfg.recent_projects == []
    assert cfg.auto_start is False
    assert cfg.auto_start_delay_ms == 500


def test_unreadable_toml_yields_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("this is = = not toml", encoding="utf-8")

    assert load_config(path) == AppConfig()


def test_shell_environment_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.toml"
    path.write_text('shell = "/bin/bash"\n', encoding="utf-8")
    monkeypatch.setenv("SPLITMUX_SHELL", "/bin/zsh")

    assert load_config(path).shell == "/bin/zsh"


def test_recent_projects_are_deduped_and_trimmed(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SPLITMUX_SHELL", raising=False)
    path = tmp_path / "config.toml"
    entries = ",".join(f'{{"name":"p{index}","path":"/repos/p{index}"}}' for index in range(8))
    raw = f'[{entries},{{"name":"dup","path":"/repos/p0"}},{{"name":"","path":"/repos/unnamed"}},{{"path":7}}]'
    path.write_text(f"max_recent_projects = 5\nrecent_projects = '{raw}'\n", encoding="utf-8")

    cfg = load_config(path)

    assert [item["path"] for item in cfg.recent_projects] == [f"/repos/p{index}" for index in range(5)]


def test_remember_project_moves_entry_to_front() -> None:
    cfg = AppConfig(max_recent_projects=5)
    for name in ("a", "b", "c"):
        remember_project(cfg, Project(name=name, path=f"/repos/{name}"))

    remember_project(cfg, Project(name="a", path="/repos/a"))

    assert [project.name for project in recent_projects(cfg)] == ["a", "c", "b"]


def test_assignment_is_validated() -> None:
    cfg = AppConfig()

    with pytest.raises(ValidationError):
        cfg.cols = 0
    with pytest.raises(ValidationError):
        cfg.shell = "  "
