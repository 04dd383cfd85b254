"""Deterministic error model, exit codes and host wire error codes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    LAYOUT_ERROR = 5
    VALIDATION_ERROR = 7


class HostErrorCode(str, Enum):
    DOUBLE_SPAWN = "DOUBLE_SPAWN"
    SHELL_NOT_ALLOWED = "SHELL_NOT_ALLOWED"
    INVALID_CWD = "INVALID_CWD"
    CWD_OUTSIDE_BOUNDARY = "CWD_OUTSIDE_BOUNDARY"
    SPAWN_EXCEPTION = "SPAWN_EXCEPTION"
    INVALID_PTY = "INVALID_PTY"
    SPAWN_FAILED = "SPAWN_FAILED"
    UNCAUGHT_EXCEPTION = "UNCAUGHT_EXCEPTION"
    UNHANDLED_REJECTION = "UNHANDLED_REJECTION"


@dataclass
class SplitMuxError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


class NotAPaneError(SplitMuxError):
    """Target id is unknown or names a split node."""


class CannotCloseError(SplitMuxError):
    """Target pane is the tree root."""


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
