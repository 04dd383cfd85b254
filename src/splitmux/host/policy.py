"""Spawn policy for the process host: shell whitelist, cwd boundary, env.

The boundary check tolerates the boundary's parent and grandparent so that
project roots sitting next to the workspace root remain reachable. It is a
deliberately loose containment check, not a hardened sandbox.
"""

from __future__ import annotations

import ntpath
import os
import posixpath
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import ModuleType

SENSITIVE_ENV_VARS: tuple[str, ...] = (
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "NPM_TOKEN",
    "PRIVATE_KEY",
    "SECRET_KEY",
    "API_SECRET",
    "DATABASE_PASSWORD",
    "DB_PASSWORD",
)
TERMINAL_ENV: dict[str, str] = {
    "TERM": "xterm-256color",
    "COLORTERM": "truecolor",
}
BOUNDARY_ANCESTOR_LEVELS = 2


@dataclass(frozen=True)
class ShellPolicy:
    platform: str
    shells: tuple[str, ...]
    path_module: ModuleType = posixpath
    aliases: dict[str, str] = field(default_factory=dict)

    def is_shell_allowed(self, shell: str) -> bool:
        normalized = shell.strip().lower()
        if not normalized:
            return False
        sep = self.path_module.sep
        shell_name = self.path_module.basename(normalized)
        for allowed in self.shells:
            candidate = allowed.lower()
            if normalized == candidate:
                return True
            if normalized.endswith(sep + candidate):
                return True
            if shell_name == self.path_module.basename(candidate):
                return True
        return False

    def resolve_shell(self, shell: str) -> str:
        return self.aliases.get(shell.strip(), shell)


PLATFORM_POLICIES: dict[str, ShellPolicy] = {
    "win32": ShellPolicy(
        platform="win32",
        shells=(
            "powershell.exe",
            "pwsh.exe",
            "cmd.exe",
            "powershell",
            "pwsh",
            "cmd",
            "C:\\Windows\\System32\\WindowsPowerShell\\v1.0\\powershell.exe",
            "C:\\Windows\\System32\\cmd.exe",
            "C:\\Program Files\\PowerShell\\7\\pwsh.exe",
        ),
        path_module=ntpath,
        aliases={"powershell.exe": "C:\\Windows\\System32\\WindowsPowerShell\\v1.0\\powershell.exe"},
    ),
    "darwin": ShellPolicy(
        platform="darwin",
        shells=(
            "zsh",
            "bash",
            "sh",
            "/bin/zsh",
            "/bin/bash",
            "/bin/sh",
            "/usr/local/bin/zsh",
            "/usr/local/bin/bash",
        ),
    ),
    "linux": ShellPolicy(
        platform="linux",
        shells=(
            "bash",
            "zsh",
            "sh",
            "/bin/bash",
            "/bin/zsh",
            "/bin/sh",
            "/usr/bin/bash",
            "/usr/bin/zsh",
        ),
    ),
}


def policy_for_platform(platform: str | None = None) -> ShellPolicy:
    key = (platform or sys.platform).lower()
    if key.startswith("win"):
        key = "win32"
    return PLATFORM_POLICIES.get(key, PLATFORM_POLICIES["linux"])


def is_valid_directory(path: str) -> bool:
    try:
        return os.path.isdir(path)
    except (OSError, ValueError):
        return False


def _normalize(path: str) -> str:
    return os.path.realpath(os.path.abspath(path)).lower()


def is_path_within(target: str, base: str, *, ancestor: bool = False) -> bool:
    try:
        normalized_target = _normalize(target)
        normalized_base = _normalize(base)
    except (OSError, ValueError):
        return False
    if normalized_target == normalized_base:
        return True
    is_fs_root = os.path.dirname(normalized_base) == normalized_base
    if is_fs_root and ancestor:
        # Filesystem root reached by walking up only admits itself.
        return False
    prefix = normalized_base if normalized_base.endswith(os.sep) else normalized_base + os.sep
    return normalized_target.startswith(prefix)


def allowed_roots(boundary: str, levels: int = BOUNDARY_ANCESTOR_LEVELS) -> list[str]:
    roots = [os.path.realpath(os.path.abspath(boundary))]
    for _ in range(levels):
        roots.append(os.path.dirname(roots[-1]))
    return roots


def is_within_boundary(target: str, boundary: str | None) -> bool:
    if not boundary:
        return True
    own_root, *ancestors = allowed_roots(boundary)
    if is_path_within(target, own_root):
        return True
    return any(is_path_within(target, root, ancestor=True) for root in ancestors)


def sanitize_env(base_env: Mapping[str, str]) -> dict[str, str]:
    sanitized = dict(base_env)
    for name in SENSITIVE_ENV_VARS:
        sanitized.pop(name, None)
    sanitized.update(TERMINAL_ENV)
    return sanitized
