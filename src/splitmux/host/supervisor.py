"""Per-host supervisor: owns the one pty slot and the boundary for a host."""

from __future__ import annotations

import logging as py_logging
import os
import threading
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from splitmux.errors import HostErrorCode
from splitmux.host.policy import (
    ShellPolicy,
    is_valid_directory,
    is_within_boundary,
    policy_for_platform,
    sanitize_env,
)
from splitmux.host.pty_backend import PtyProcess, PtySpawn, default_spawner
from splitmux.models import ResizeRequest, SpawnRequest
from splitmux.protocol import BridgeMessage, HostMessage, Message

logger = py_logging.getLogger(__name__)

SendFn = Callable[[str, object], None]
ThreadFactory = Callable[..., Any]


class SpawnRejected(Exception):
    def __init__(self, code: HostErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def real_path(path: str) -> str:
    try:
        return os.path.realpath(path)
    except (OSError, ValueError):
        return path


class HostSupervisor:
    def __init__(
        self,
        send: SendFn,
        *,
        policy: ShellPolicy | None = None,
        spawn: PtySpawn | None = None,
        environ: Mapping[str, str] | None = None,
        thread_factory: ThreadFactory = threading.Thread,
    ) -> None:
        self._send = send
        self._policy = policy or policy_for_platform()
        self._spawn = spawn or default_spawner(self._policy.platform)
        self._environ = environ if environ is not None else os.environ
        self._thread_factory = thread_factory
        self._lock = threading.Lock()
        self._process: PtyProcess | None = None
        self._boundary: str | None = None

    @property
    def boundary(self) -> str | None:
        return self._boundary

    @property
    def process(self) -> PtyProcess | None:
        return self._process

    def handle_message(self, message: Message) -> None:
        kind = message.get("type")
        data = message.get("data")
        if kind == BridgeMessage.SPAWN.value:
            self.spawn(data)
        elif kind == BridgeMessage.WRITE.value:
            self.write(data)
        elif kind == BridgeMessage.RESIZE.value:
            self.resize(data)
        elif kind == BridgeMessage.KILL.value:
            self.kill()
        elif kind == BridgeMessage.SET_BOUNDARY.value:
            self.set_boundary(data)
        else:
            logger.warning("host ignored unknown request type=%s", kind)

    def set_boundary(self, data: object) -> None:
        path = data.get("path") if isinstance(data, dict) else None
        if not isinstance(path, str) or not is_valid_directory(path):
            logger.warning("host ignored set-boundary with invalid path=%r", path)
            return
        if self._boundary is not None:
            logger.warning("host boundary already set to %s; ignoring %s", self._boundary, path)
            return
        self._boundary = os.path.realpath(os.path.abspath(path))
        logger.info("host boundary set path=%s", self._boundary)
        self._send(HostMessage.BOUNDARY_SET.value, {"path": self._boundary})

    def validate(self, data: object) -> SpawnRequest:
        """Run the spawn pipeline up to, but excluding, process creation."""
        if self._process is not None:
            raise SpawnRejected(
                HostErrorCode.DOUBLE_SPAWN,
                "PTY already spawned. Kill existing process first.",
            )
        try:
            request = SpawnRequest.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as exc:
            raise SpawnRejected(
                HostErrorCode.SPAWN_FAILED,
                f"Invalid spawn request: {exc.errors(include_url=False)}",
            ) from exc
        if not self._policy.is_shell_allowed(request.shell):
            raise SpawnRejected(
                HostErrorCode.SHELL_NOT_ALLOWED,
                f"Shell not allowed: {request.shell}. Use {', '.join(_shell_names(self._policy))}.",
            )
        if not is_valid_directory(request.cwd):
            raise SpawnRejected(HostErrorCode.INVALID_CWD, f"Invalid working directory: {request.cwd}")
        if not is_within_boundary(request.cwd, self._boundary):
            raise SpawnRejected(
                HostErrorCode.CWD_OUTSIDE_BOUNDARY,
                f"CWD outside allowed boundary. Path: {request.cwd}",
            )
        return request

    def spawn(self, data: object) -> None:
        try:
            request = self.validate(data)
        except SpawnRejected as exc:
            logger.warning("spawn rejected code=%s message=%s", exc.code.value, exc.message)
            self._send_error(exc.code, exc.message)
            return

        try:
            cwd = real_path(request.cwd)
            shell = self._policy.resolve_shell(request.shell)
            env = sanitize_env(self._environ)
            logger.info(
                "spawning shell=%s cwd=%s size=%sx%s",
                shell,
                cwd,
                request.cols,
                request.rows,
            )
            try:
                process = self._spawn(shell, list(request.args), cwd, env, request.cols, request.rows)
            except Exception as exc:
                logger.error("pty spawn raised: %s", exc, exc_info=True)
                self._send_error(HostErrorCode.SPAWN_EXCEPTION, str(exc) or type(exc).__name__)
                return

            if process is None or not getattr(process, "pid", None):
                logger.error("pty spawn returned an invalid process")
                self._send_error(HostErrorCode.INVALID_PTY, "Invalid PTY process returned")
                return

            with self._lock:
                self._process = process
            self._send(HostMessage.SPAWNED.value, {"pid": process.pid, "cwd": cwd, "shell": request.shell})
            reader = self._thread_factory(
                target=self._pump_output,
                args=(process,),
                name=f"splitmux-pty-{process.pid}",
                daemon=True,
            )
            reader.start()
        except Exception as exc:
            logger.exception("spawn failed")
            self._send_error(HostErrorCode.SPAWN_FAILED, str(exc) or type(exc).__name__)

    def write(self, data: object) -> None:
        process = self._process
        if process is None or not isinstance(data, str):
            return
        process.write(data)

    def resize(self, data: object) -> None:
        process = self._process
        if process is None:
            return
        try:
            request = ResizeRequest.model_validate(data if isinstance(data, dict) else {})
        except ValidationError:
            logger.warning("host ignored invalid resize payload=%r", data)
            return
        process.setwinsize(request.rows, request.cols)

    def kill(self) -> None:
        with self._lock:
            process = self._process
            self._process = None
        if process is None:
            return
        logger.info("killing shell pid=%s", process.pid)
        process.terminate(force=True)

    def _pump_output(self, process: PtyProcess) -> None:
        chunks = 0
        while True:
            try:
                data = process.read()
            except EOFError:
                break
            except OSError as exc:
                logger.debug("pty read ended pid=%s: %s", process.pid, exc)
                break
            if not data:
                if not process.isalive():
                    break
                continue
            chunks += 1
            if chunks <= 5:
                logger.debug("pty data #%s length=%s", chunks, len(data))
            self._send(HostMessage.DATA.value, data)

        exit_code, signal = process.wait_exit()
        logger.info("shell exited pid=%s code=%s signal=%s", process.pid, exit_code, signal)
        self._send(HostMessage.EXIT.value, {"exitCode": exit_code, "signal": signal})
        with self._lock:
            if self._process is process:
                self._process = None

    def _send_error(self, code: HostErrorCode, message: str) -> None:
        self._send(HostMessage.ERROR.value, {"message": message, "code": code.value})


def _shell_names(policy: ShellPolicy) -> list[str]:
    names: list[str] = []
    for shell in policy.shells:
        name = policy.path_module.basename(shell)
        if name not in names:
            names.append(name)
    return names
