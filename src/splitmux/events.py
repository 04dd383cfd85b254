"""Tagged events delivered by a process bridge to the control loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from splitmux.models import ConnectionStatus


@dataclass(frozen=True)
class HostReady:
    pass


@dataclass(frozen=True)
class BoundarySet:
    path: str


@dataclass(frozen=True)
class ShellSpawned:
    pid: int
    cwd: str = ""
    shell: str = ""


@dataclass(frozen=True)
class ShellOutput:
    data: str


@dataclass(frozen=True)
class ShellExited:
    exit_code: int | None
    signal: int | None = None


@dataclass(frozen=True)
class HostFailed:
    message: str
    code: str = ""


@dataclass(frozen=True)
class StatusChanged:
    status: ConnectionStatus


HostEvent = Union[HostReady, BoundarySet, ShellSpawned, ShellOutput, ShellExited, HostFailed]
SessionEvent = Union[HostEvent, StatusChanged]
