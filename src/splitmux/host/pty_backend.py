"""Pseudo-terminal spawning for the process host.

POSIX hosts use pexpect, Windows hosts use pywinpty. Both are wrapped in
adapters exposing the same small surface so the supervisor never branches
on platform.
"""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Callable
from contextlib import suppress
from typing import Protocol

from splitmux.errors import ExitCode, SplitMuxError

READ_CHUNK_SIZE = 4096


class PtyProcess(Protocol):
    pid: int | None

    def read(self, size: int = READ_CHUNK_SIZE) -> str: ...

    def write(self, data: str) -> None: ...

    def setwinsize(self, rows: int, cols: int) -> None: ...

    def isalive(self) -> bool: ...

    def terminate(self, force: bool = False) -> None: ...

    def wait_exit(self) -> tuple[int | None, int | None]: ...


PtySpawn = Callable[[str, list[str], str, dict[str, str], int, int], PtyProcess]


class PexpectPty:
    def __init__(self, child: object, eof_error: type[BaseException]) -> None:
        self._child = child
        self._eof_error = eof_error
        self.pid: int | None = getattr(child, "pid", None)

    def read(self, size: int = READ_CHUNK_SIZE) -> str:
        try:
            return self._child.read_nonblocking(size, timeout=None)
        except self._eof_error as exc:
            raise EOFError("pty closed") from exc

    def write(self, data: str) -> None:
        self._child.send(data)

    def setwinsize(self, rows: int, cols: int) -> None:
        self._child.setwinsize(rows, cols)

    def isalive(self) -> bool:
        return bool(self._child.isalive())

    def terminate(self, force: bool = False) -> None:
        self._child.terminate(force=force)

    def wait_exit(self) -> tuple[int | None, int | None]:
        with suppress(Exception):
            self._child.close()
        return self._child.exitstatus, self._child.signalstatus


class WinptyPty:
    def __init__(self, process: object) -> None:
        self._process = process
        self.pid: int | None = getattr(process, "pid", None)

    def read(self, size: int = READ_CHUNK_SIZE) -> str:
        chunk = self._process.read(size)
        if isinstance(chunk, bytes):
            return chunk.decode("utf-8", errors="replace")
        return str(chunk)

    def write(self, data: str) -> None:
        self._process.write(data)

    def setwinsize(self, rows: int, cols: int) -> None:
        self._process.setwinsize(rows, cols)

    def isalive(self) -> bool:
        return bool(self._process.isalive())

    def terminate(self, force: bool = False) -> None:
        self._process.terminate(force=force)

    def wait_exit(self) -> tuple[int | None, int | None]:
        with suppress(Exception):
            self._process.wait()
        return getattr(self._process, "exitstatus", None), None


def spawn_with_pexpect(
    shell: str,
    args: list[str],
    cwd: str,
    env: dict[str, str],
    cols: int,
    rows: int,
) -> PtyProcess:
    try:
        import pexpect
    except Exception as exc:
        raise SplitMuxError(
            "pexpect backend is unavailable.",
            code=ExitCode.RUNTIME_ERROR,
            hint="Install splitmux with its POSIX dependencies.",
        ) from exc

    child = pexpect.spawn(
        shell,
        list(args),
        cwd=cwd,
        env=env,
        dimensions=(rows, cols),
        encoding="utf-8",
        codec_errors="replace",
    )
    return PexpectPty(child, pexpect.EOF)


def spawn_with_pywinpty(
    shell: str,
    args: list[str],
    cwd: str,
    env: dict[str, str],
    cols: int,
    rows: int,
) -> PtyProcess:
    try:
        from winpty import PtyProcess as WinPtyProcess
    except Exception as exc:
        raise SplitMuxError(
            "pywinpty backend is unavailable.",
            code=ExitCode.RUNTIME_ERROR,
            hint="Install splitmux with its Windows dependencies.",
        ) from exc

    process = WinPtyProcess.spawn(
        subprocess.list2cmdline([shell, *args]),
        cwd=cwd,
        env=env,
        dimensions=(rows, cols),
    )
    return WinptyPty(process)


def default_spawner(platform: str | None = None) -> PtySpawn:
    if (platform or sys.platform).startswith("win"):
        return spawn_with_pywinpty
    return spawn_with_pexpect
