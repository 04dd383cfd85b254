"""Client side of one process host: child process, IPC stream, status machine.

A reader thread per host process decodes stdout and queues messages; every
state transition happens in :meth:`ProcessBridge.poll`, which the
orchestrator calls from its control thread.
"""

from __future__ import annotations

import logging as py_logging
import queue
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import IO, Any

from splitmux.events import (
    BoundarySet,
    HostFailed,
    HostReady,
    SessionEvent,
    ShellExited,
    ShellSpawned,
    StatusChanged,
)
from splitmux.models import ConnectionStatus, SpawnRequest
from splitmux.protocol import BridgeMessage, LineDecoder, Message, encode_message, parse_host_event

logger = py_logging.getLogger(__name__)

DEFAULT_KILL_TIMEOUT = 0.5
DEFAULT_RESTART_MARGIN = 0.1
READ_SIZE = 65536

PopenFactory = Callable[..., Any]
ThreadFactory = Callable[..., Any]
TimerFactory = Callable[..., Any]


def default_host_command() -> list[str]:
    return [sys.executable, "-m", "splitmux.host"]


@dataclass(frozen=True)
class _Inbound:
    generation: int
    message: Message | None = None
    closed: bool = False
    returncode: int | None = None


class ProcessBridge:
    def __init__(
        self,
        session_id: str,
        boundary_path: str,
        *,
        host_command: Sequence[str] | None = None,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
        restart_margin: float = DEFAULT_RESTART_MARGIN,
        popen: PopenFactory = subprocess.Popen,
        thread_factory: ThreadFactory = threading.Thread,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id
        self.boundary_path = boundary_path
        self._host_command = list(host_command) if host_command else default_host_command()
        self._kill_timeout = kill_timeout
        self._restart_margin = restart_margin
        self._popen = popen
        self._thread_factory = thread_factory
        self._timer_factory = timer_factory
        self._clock = clock

        self._process: Any = None
        self._status = ConnectionStatus.DISCONNECTED
        self._generation = 0
        self._inbound: queue.Queue[_Inbound] = queue.Queue()
        self._outbox: list[SessionEvent] = []
        self._decoder = LineDecoder(source=f"bridge[{session_id}]")
        self._restart_due: float | None = None
        self.boundary_set = False
        self.pid: int | None = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def generation(self) -> int:
        return self._generation

    def is_running(self) -> bool:
        return self._process is not None

    def start(self) -> bool:
        if self._process is not None:
            logger.warning("bridge session=%s host already running", self.session_id)
            return True

        self._restart_due = None
        self._generation += 1
        generation = self._generation
        self.boundary_set = False
        self.pid = None
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            process = self._popen(
                self._host_command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except Exception as exc:
            logger.error("bridge session=%s failed to start host: %s", self.session_id, exc)
            self._set_status(ConnectionStatus.ERROR)
            self._outbox.append(HostFailed(message=str(exc) or type(exc).__name__))
            return False

        self._process = process
        self._decoder = LineDecoder(source=f"bridge[{self.session_id}]")
        self._spawn_thread(self._read_stdout, process, generation, "stdout")
        self._spawn_thread(self._read_stderr, process, generation, "stderr")
        logger.info("bridge session=%s host started pid=%s", self.session_id, getattr(process, "pid", None))
        return True

    def spawn(self, request: SpawnRequest) -> bool:
        return self._send(BridgeMessage.SPAWN, request.to_wire())

    def write(self, data: str) -> bool:
        return self._send(BridgeMessage.WRITE, data)

    def resize(self, cols: int, rows: int) -> bool:
        return self._send(BridgeMessage.RESIZE, {"cols": cols, "rows": rows})

    def kill_shell(self) -> bool:
        return self._send(BridgeMessage.KILL, {})

    def stop(self) -> None:
        process = self._process
        if process is None:
            return
        self.kill_shell()
        self._process = None
        if process.stdin is not None:
            with suppress(OSError, ValueError):
                process.stdin.close()

        timer = self._timer_factory(self._kill_timeout, _force_terminate, args=(process,))
        timer.daemon = True
        timer.start()
        self._set_status(ConnectionStatus.DISCONNECTED)
        logger.info("bridge session=%s host stopping", self.session_id)

    def restart(self) -> None:
        self.stop()
        self._restart_due = self._clock() + self._kill_timeout + self._restart_margin

    def ingest(self, chunk: bytes, *, generation: int | None = None) -> None:
        """Decode a stdout chunk from the host and queue complete messages."""
        resolved = self._generation if generation is None else generation
        if resolved != self._generation:
            return
        for message in self._decoder.feed(chunk):
            self._inbound.put(_Inbound(generation=resolved, message=message))

    def host_closed(self, returncode: int | None, *, generation: int | None = None) -> None:
        resolved = self._generation if generation is None else generation
        self._inbound.put(_Inbound(generation=resolved, closed=True, returncode=returncode))

    def poll(self) -> list[SessionEvent]:
        """Apply queued host messages and return the resulting events in order."""
        if self._restart_due is not None and self._clock() >= self._restart_due:
            self._restart_due = None
            self.start()

        while True:
            try:
                item = self._inbound.get_nowait()
            except queue.Empty:
                break
            if item.generation != self._generation:
                continue
            if item.closed:
                self._on_host_closed(item.returncode)
            elif item.message is not None:
                self._on_message(item.message)

        events, self._outbox = self._outbox, []
        return events

    def _on_message(self, message: Message) -> None:
        event = parse_host_event(message)
        if event is None:
            return
        if isinstance(event, HostReady):
            logger.info("bridge session=%s host ready", self.session_id)
            self._send(BridgeMessage.SET_BOUNDARY, {"path": self.boundary_path})
        elif isinstance(event, BoundarySet):
            logger.info("bridge session=%s boundary set path=%s", self.session_id, event.path)
            self.boundary_set = True
        elif isinstance(event, ShellSpawned):
            logger.info("bridge session=%s shell spawned pid=%s", self.session_id, event.pid)
            self.pid = event.pid
            self._set_status(ConnectionStatus.CONNECTED)
        elif isinstance(event, ShellExited):
            logger.info("bridge session=%s shell exited code=%s", self.session_id, event.exit_code)
            self.pid = None
            self._set_status(ConnectionStatus.DISCONNECTED)
        elif isinstance(event, HostFailed):
            logger.error("bridge session=%s host error code=%s: %s", self.session_id, event.code, event.message)
            self._set_status(ConnectionStatus.ERROR)
        self._outbox.append(event)

    def _on_host_closed(self, returncode: int | None) -> None:
        logger.info("bridge session=%s host exited code=%s", self.session_id, returncode)
        self._process = None
        self.pid = None
        if self._status == ConnectionStatus.CONNECTED:
            self._set_status(ConnectionStatus.DISCONNECTED)
        elif self._status == ConnectionStatus.CONNECTING:
            self._set_status(ConnectionStatus.ERROR)
            self._outbox.append(HostFailed(message=f"Process host exited unexpectedly (code {returncode})."))

    def _set_status(self, status: ConnectionStatus) -> None:
        if self._status == status:
            return
        self._status = status
        self._outbox.append(StatusChanged(status=status))

    def _send(self, message_type: BridgeMessage, data: object) -> bool:
        process = self._process
        stdin = getattr(process, "stdin", None)
        if stdin is None or stdin.closed:
            logger.warning("bridge session=%s cannot send %s: stdin not writable", self.session_id, message_type.value)
            return False
        try:
            stdin.write(encode_message(message_type, data))
            stdin.flush()
        except (OSError, ValueError) as exc:
            logger.error("bridge session=%s send %s failed: %s", self.session_id, message_type.value, exc)
            return False
        return True

    def _spawn_thread(self, target: Callable[..., None], process: Any, generation: int, stream: str) -> None:
        thread = self._thread_factory(
            target=target,
            args=(process, generation),
            name=f"splitmux-bridge-{self.session_id}-{stream}",
            daemon=True,
        )
        thread.start()

    def _read_stdout(self, process: Any, generation: int) -> None:
        stream: IO[bytes] | None = process.stdout
        if stream is not None:
            while True:
                try:
                    chunk = _read_chunk(stream)
                except (OSError, ValueError):
                    break
                if not chunk:
                    break
                self.ingest(chunk, generation=generation)
        returncode: int | None = None
        with suppress(Exception):
            returncode = process.wait()
        self.host_closed(returncode, generation=generation)

    def _read_stderr(self, process: Any, generation: int) -> None:
        stream: IO[bytes] | None = process.stderr
        if stream is None:
            return
        try:
            for raw in iter(stream.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    logger.debug("host[%s] %s", self.session_id, line)
        except (OSError, ValueError):
            return


def _read_chunk(stream: IO[bytes]) -> bytes:
    read1 = getattr(stream, "read1", None)
    if read1 is not None:
        return read1(READ_SIZE)
    return stream.read(READ_SIZE)


def _force_terminate(process: Any) -> None:
    if process.poll() is None:
        logger.warning("host pid=%s did not exit in time; terminating", getattr(process, "pid", None))
        with suppress(OSError):
            process.terminate()
