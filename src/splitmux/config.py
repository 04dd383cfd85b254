"""XDG config loading/saving."""

from __future__ import annotations

import json
import os
import sys
from contextlib import suppress
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from splitmux.models import DEFAULT_COLS, DEFAULT_ROWS, Project

DEFAULT_CONFIG_PATH = Path("~/.config/splitmux/config.toml").expanduser()
DEFAULT_KILL_TIMEOUT_MS = 500
DEFAULT_RESTART_MARGIN_MS = 100
DEFAULT_RESIZE_DEBOUNCE_MS = 150
DEFAULT_SCROLLBACK_LIMIT = 200_000
DEFAULT_MAX_RECENT_PROJECTS = 10
DEFAULT_AUTO_START_DELAY_MS = 500
SHELL_ENV = "SPLITMUX_SHELL"

LogLevel = Literal["DEBUG", "INFO", "WARN", "ERROR"]
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARN", "ERROR"}


class ProjectEntry(TypedDict):
    name: str
    path: str


def default_shell(platform: str | None = None) -> str:
    if (platform or sys.platform).startswith("win"):
        return "powershell.exe"
    return "bash"


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    shell: str = Field(default_factory=default_shell)
    shell_args: list[str] = Field(default_factory=list)
    boundary_root: str = ""
    cols: int = Field(default=DEFAULT_COLS, ge=2, le=1000)
    rows: int = Field(default=DEFAULT_ROWS, ge=2, le=1000)
    kill_timeout_ms: int = Field(default=DEFAULT_KILL_TIMEOUT_MS, ge=0, le=60_000)
    restart_margin_ms: int = Field(default=DEFAULT_RESTART_MARGIN_MS, ge=0, le=60_000)
    resize_debounce_ms: int = Field(default=DEFAULT_RESIZE_DEBOUNCE_MS, ge=0, le=10_000)
    scrollback_limit: int = Field(default=DEFAULT_SCROLLBACK_LIMIT, ge=0)
    log_level: LogLevel = "INFO"
    host_command: list[str] = Field(default_factory=list)
    startup_command: str = ""
    auto_start: bool = False
    auto_start_delay_ms: int = Field(default=DEFAULT_AUTO_START_DELAY_MS, ge=0, le=60_000)
    recent_projects: list[ProjectEntry] = Field(default_factory=list)
    max_recent_projects: int = Field(default=DEFAULT_MAX_RECENT_PROJECTS, ge=5, le=50)

    @field_validator("shell")
    @classmethod
    def _validate_shell(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Shell cannot be empty")
        return value.strip()

    @property
    def kill_timeout(self) -> float:
        return self.kill_timeout_ms / 1000.0

    @property
    def restart_margin(self) -> float:
        return self.restart_margin_ms / 1000.0

    @property
    def resize_debounce(self) -> float:
        return self.resize_debounce_ms / 1000.0

    @property
    def auto_start_delay(self) -> float:
        return self.auto_start_delay_ms / 1000.0


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    if isinstance(value, list):
        return "[" + ", ".join(_toml_scalar(item) for item in value) + "]"
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _decode_json_container(value: object) -> object | None:
    if isinstance(value, str):
        try:
            loaded: object = json.loads(value)
            return loaded
        except json.JSONDecodeError:
            return None
    return value


def _normalize_string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _normalize_recent_projects(value: object, limit: int) -> list[ProjectEntry]:
    entries = _decode_json_container(value)
    if not isinstance(entries, list):
        return []

    normalized: list[ProjectEntry] = []
    seen_paths: set[str] = set()
    for item in entries:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        path = item.get("path")
        if not isinstance(name, str) or not isinstance(path, str):
            continue
        project_name = name.strip()
        project_path = path.strip()
        if not project_path or project_path in seen_paths:
            continue
        seen_paths.add(project_path)
        normalized.append(ProjectEntry(name=project_name or Path(project_path).name, path=project_path))
    return normalized[:limit]


def _bounded_int(raw: dict[str, object], key: str, low: int, high: int, fallback: int) -> int:
    value = raw.get(key, fallback)
    if isinstance(value, int) and not isinstance(value, bool) and low <= value <= high:
        return value
    return fallback


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    shell = raw.get("shell", cfg.shell)
    if isinstance(shell, str) and shell.strip():
        cfg.shell = shell
    env_shell = os.getenv(SHELL_ENV, "").strip()
    if env_shell:
        cfg.shell = env_shell

    cfg.shell_args = _normalize_string_list(raw.get("shell_args", []))

    boundary_root = raw.get("boundary_root", cfg.boundary_root)
    if isinstance(boundary_root, str):
        cfg.boundary_root = boundary_root

    cfg.cols = _bounded_int(raw, "cols", 2, 1000, cfg.cols)
    cfg.rows = _bounded_int(raw, "rows", 2, 1000, cfg.rows)
    cfg.kill_timeout_ms = _bounded_int(raw, "kill_timeout_ms", 0, 60_000, cfg.kill_timeout_ms)
    cfg.restart_margin_ms = _bounded_int(raw, "restart_margin_ms", 0, 60_000, cfg.restart_margin_ms)
    cfg.resize_debounce_ms = _bounded_int(raw, "resize_debounce_ms", 0, 10_000, cfg.resize_debounce_ms)
    cfg.scrollback_limit = _bounded_int(raw, "scrollback_limit", 0, 100_000_000, cfg.scrollback_limit)

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str) and log_level.upper() in _VALID_LOG_LEVELS:
        cfg.log_level = cast(LogLevel, log_level.upper())

    cfg.host_command = _normalize_string_list(raw.get("host_command", []))
    startup_command = raw.get("startup_command", cfg.startup_command)
    if isinstance(startup_command, str):
        cfg.startup_command = startup_command.strip()
    auto_start = raw.get("auto_start", cfg.auto_start)
    if isinstance(auto_start, bool):
        cfg.auto_start = auto_start
    cfg.auto_start_delay_ms = _bounded_int(raw, "auto_start_delay_ms", 0, 60_000, cfg.auto_start_delay_ms)
    cfg.max_recent_projects = _bounded_int(raw, "max_recent_projects", 5, 50, cfg.max_recent_projects)
    cfg.recent_projects = _normalize_recent_projects(
        raw.get("recent_projects", []),
        cfg.max_recent_projects,
    )
    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return AppConfig()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()
    return _sanitize(raw)


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    recent = _normalize_recent_projects(config.recent_projects, config.max_recent_projects)

    lines = [
        f"shell = {_toml_scalar(config.shell)}",
        f"shell_args = {_toml_scalar(list(config.shell_args))}",
        f"boundary_root = {_toml_scalar(config.boundary_root)}",
        f"cols = {_toml_scalar(config.cols)}",
        f"rows = {_toml_scalar(config.rows)}",
        f"kill_timeout_ms = {_toml_scalar(config.kill_timeout_ms)}",
        f"restart_margin_ms = {_toml_scalar(config.restart_margin_ms)}",
        f"resize_debounce_ms = {_toml_scalar(config.resize_debounce_ms)}",
        f"scrollback_limit = {_toml_scalar(config.scrollback_limit)}",
        f"log_level = {_toml_scalar(config.log_level)}",
        f"host_command = {_toml_scalar(list(config.host_command))}",
        f"startup_command = {_toml_scalar(config.startup_command)}",
        f"auto_start = {_toml_scalar(config.auto_start)}",
        f"auto_start_delay_ms = {_toml_scalar(config.auto_start_delay_ms)}",
        f"max_recent_projects = {_toml_scalar(config.max_recent_projects)}",
        f"recent_projects = {_toml_scalar(json.dumps(recent, ensure_ascii=True, separators=(',', ':')))}",
    ]

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved


def remember_project(config: AppConfig, project: Project) -> AppConfig:
    """Move ``project`` to the front of the recent list, trimmed to the limit."""
    entries = [item for item in config.recent_projects if item["path"] != project.path]
    entries.insert(0, ProjectEntry(name=project.name, path=project.path))
    config.recent_projects = entries[: config.max_recent_projects]
    return config


def recent_projects(config: AppConfig) -> list[Project]:
    return [Project(name=item["name"], path=item["path"]) for item in config.recent_projects]
