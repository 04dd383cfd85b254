from __future__ import annotations

import io
import json
import logging as py_logging
import sys
import threading
from pathlib import Path
from typing import Any

import pytest

from splitmux.errors import HostErrorCode
from splitmux.host import main as host_main
from splitmux.host.main import MessageWriter, ProcessHost, run_host
from splitmux.host.policy import PLATFORM_POLICIES
from splitmux.protocol import encode_message


class _StillRunningPty:
    pid = 99

    def __init__(self) -> None:
        self.terminated = False
        self._closed = threading.Event()

    def read(self, _size: int = 4096) -> str:
        self._closed.wait(5)
        raise EOFError

    def write(self, data: str) -> None:
        return None

    def setwinsize(self, rows: int, cols: int) -> None:
        return None

    def isalive(self) -> bool:
        return not self.terminated

    def terminate(self, force: bool = False) -> None:
        self.terminated = True
        self._closed.set()

    def wait_exit(self) -> tuple[int | None, int | None]:
        return 0, None


def _messages(stream: io.BytesIO) -> list[dict[str, Any]]:
    return [json.loads(line) for line in stream.getvalue().decode("utf-8").splitlines()]


def _host(stdin: bytes, **kwargs: Any) -> tuple[ProcessHost, io.BytesIO]:
    stdout = io.BytesIO()
    host = ProcessHost(io.BytesIO(stdin), stdout, policy=PLATFORM_POLICIES["linux"], **kwargs)
    return host, stdout


def test_serve_sends_ready_and_returns_on_stdin_eof(tmp_path: Path) -> None:
    stdin = encode_message("set-boundary", {"path": str(tmp_path)})
    host, stdout = _host(stdin)

    assert host.serve() == 0

    messages = _messages(stdout)
    assert messages[0] == {"type": "ready", "data": {}}
    assert messages[1] == {"type": "boundary-set", "data": {"path": str(tmp_path.resolve())}}


def test_serve_reports_rejections_and_skips_malformed_lines(tmp_path: Path) -> None:
    stdin = b"garbage\n" + encode_message("spawn", {"shell": "python", "cwd": str(tmp_path)})
    host, stdout = _host(stdin)

    host.serve()

    messages = _messages(stdout)
    assert [item["type"] for item in messages] == ["ready", "error"]
    assert messages[1]["data"]["code"] == "SHELL_NOT_ALLOWED"


def test_stdin_eof_kills_running_shell(tmp_path: Path) -> None:
    process = _StillRunningPty()
    stdin = encode_message("spawn", {"shell": "/bin/sh", "cwd": str(tmp_path)})
    host, _stdout = _host(stdin, spawn=lambda *_args: process)

    host.serve()

    assert process.terminated is True


def test_handler_exception_is_reported_as_uncaught(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    host, stdout = _host(encode_message("write", "x") + encode_message("kill"))

    def boom(_message: object) -> None:
        raise RuntimeError("handler blew up")

    monkeypatch.setattr(host.supervisor, "handle_message", boom)
    host.serve()

    errors = [item for item in _messages(stdout) if item["type"] == "error"]
    assert len(errors) == 2
    assert errors[0]["data"] == {"message": "Uncaught: handler blew up", "code": "UNCAUGHT_EXCEPTION"}


def test_thread_exceptions_are_reported_as_unhandled_rejection(monkeypatch: pytest.MonkeyPatch) -> None:
    host, stdout = _host(b"")
    monkeypatch.setattr(host_main.sys, "excepthook", host_main.sys.excepthook)
    monkeypatch.setattr(host_main.threading, "excepthook", threading.excepthook)
    monkeypatch.setattr(host_main.signal, "signal", lambda *_args: None)

    host.install_hooks()

    def fail() -> None:
        raise ValueError("reader failed")

    worker = threading.Thread(target=fail)
    worker.start()
    worker.join()

    errors = [item for item in _messages(stdout) if item["type"] == "error"]
    assert errors == [
        {"type": "error", "data": {"message": "Unhandled rejection: reader failed", "code": "UNHANDLED_REJECTION"}}
    ]


def test_report_uses_wire_code() -> None:
    host, stdout = _host(b"")

    host.report(HostErrorCode.UNCAUGHT_EXCEPTION, "Uncaught", KeyError("k"))

    assert _messages(stdout)[0]["data"]["code"] == "UNCAUGHT_EXCEPTION"


def test_message_writer_ignores_closed_stream() -> None:
    stream = io.BytesIO()
    writer = MessageWriter(stream)
    stream.close()

    writer.send("ready", {})


def test_run_host_returns_serve_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    host, stdout = _host(b"")
    monkeypatch.setattr(host, "install_hooks", lambda: None)

    assert run_host(host_factory=lambda: host) == 0
    assert _messages(stdout)[0]["type"] == "ready"
    console = py_logging.getLogger("splitmux").handlers[0]
    assert isinstance(console, py_logging.StreamHandler)
    assert console.stream is sys.stderr
