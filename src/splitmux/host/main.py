"""Process host entrypoint: stdio JSON lines in, pty events out.

The host is the only component allowed to execute a shell. Every failure
is reported as an ``error`` message on stdout rather than terminating the
process; stdout carries protocol traffic only, diagnostics go to stderr.
"""

from __future__ import annotations

import logging as py_logging
import signal
import sys
import threading
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import BinaryIO

from splitmux.errors import HostErrorCode
from splitmux.host.policy import ShellPolicy
from splitmux.host.pty_backend import PtySpawn
from splitmux.host.supervisor import HostSupervisor
from splitmux.logging import configure_logging
from splitmux.protocol import HostMessage, LineDecoder, encode_message

logger = py_logging.getLogger(__name__)

READ_SIZE = 65536


class MessageWriter:
    """Serializes protocol writes from the main and pty reader threads."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def send(self, message_type: str, data: object = None) -> None:
        payload = encode_message(message_type, data)
        with self._lock:
            try:
                self._stream.write(payload)
                self._stream.flush()
            except (OSError, ValueError) as exc:
                # Bridge side is gone; nothing left to report to.
                logger.debug("dropped %s message, stdout closed: %s", message_type, exc)


def _read_chunk(stream: BinaryIO) -> bytes:
    read1 = getattr(stream, "read1", None)
    if read1 is not None:
        return read1(READ_SIZE)
    return stream.read(READ_SIZE)


class ProcessHost:
    def __init__(
        self,
        stdin: BinaryIO,
        stdout: BinaryIO,
        *,
        policy: ShellPolicy | None = None,
        spawn: PtySpawn | None = None,
    ) -> None:
        self._stdin = stdin
        self.writer = MessageWriter(stdout)
        self.supervisor = HostSupervisor(self.writer.send, policy=policy, spawn=spawn)
        self._decoder = LineDecoder(source="host-stdin")

    def report(self, code: HostErrorCode, prefix: str, exc: BaseException) -> None:
        logger.error("%s: %s", prefix, exc, exc_info=(type(exc), exc, exc.__traceback__))
        self.writer.send(HostMessage.ERROR.value, {"message": f"{prefix}: {exc}", "code": code.value})

    def install_hooks(self) -> None:
        def excepthook(
            exc_type: type[BaseException],
            exc: BaseException,
            tb: TracebackType | None,
        ) -> None:
            self.report(HostErrorCode.UNCAUGHT_EXCEPTION, "Uncaught", exc)

        def thread_excepthook(args: threading.ExceptHookArgs) -> None:
            if args.exc_value is not None:
                self.report(HostErrorCode.UNHANDLED_REJECTION, "Unhandled rejection", args.exc_value)

        sys.excepthook = excepthook
        threading.excepthook = thread_excepthook

        def shutdown(signum: int, _frame: object) -> None:
            logger.info("host received signal %s", signum)
            self.supervisor.kill()
            raise SystemExit(0)

        signal.signal(signal.SIGTERM, shutdown)
        signal.signal(signal.SIGINT, shutdown)

    def serve(self) -> int:
        logger.info("process host starting")
        self.writer.send(HostMessage.READY.value, {})
        while True:
            chunk = _read_chunk(self._stdin)
            if not chunk:
                logger.info("host stdin closed; shutting down")
                self.supervisor.kill()
                return 0
            for message in self._decoder.feed(chunk):
                try:
                    self.supervisor.handle_message(message)
                except Exception as exc:
                    self.report(HostErrorCode.UNCAUGHT_EXCEPTION, "Uncaught", exc)


def run_host(
    *,
    log_level: str = "INFO",
    log_file: str | Path | None = None,
    host_factory: Callable[[], ProcessHost] | None = None,
) -> int:
    # stdout carries protocol frames; host diagnostics go to stderr only.
    configure_logging(log_level, stream=sys.stderr, log_file=log_file)
    host = host_factory() if host_factory else ProcessHost(sys.stdin.buffer, sys.stdout.buffer)
    host.install_hooks()
    try:
        return host.serve()
    except SystemExit as exc:
        return int(exc.code or 0)
    except Exception as exc:
        host.report(HostErrorCode.UNCAUGHT_EXCEPTION, "Uncaught", exc)
        return 1
