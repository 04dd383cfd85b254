"""Newline-delimited JSON wire codec shared by the bridge and the host.

Every message is one UTF-8 line holding ``{"type": ..., "data": ...}``.
Receivers buffer partial reads, keep the trailing fragment for the next
chunk and parse each complete line on its own; a malformed line is logged
and dropped without ending the stream.
"""

from __future__ import annotations

import codecs
import json
import logging as py_logging
from enum import Enum
from typing import Any

from splitmux.events import (
    BoundarySet,
    HostEvent,
    HostFailed,
    HostReady,
    ShellExited,
    ShellOutput,
    ShellSpawned,
)

logger = py_logging.getLogger(__name__)

Message = dict[str, Any]


class HostMessage(str, Enum):
    READY = "ready"
    BOUNDARY_SET = "boundary-set"
    SPAWNED = "spawned"
    DATA = "data"
    EXIT = "exit"
    ERROR = "error"


class BridgeMessage(str, Enum):
    SET_BOUNDARY = "set-boundary"
    SPAWN = "spawn"
    WRITE = "write"
    RESIZE = "resize"
    KILL = "kill"


def encode_message(message_type: str | Enum, data: object = None) -> bytes:
    kind = message_type.value if isinstance(message_type, Enum) else str(message_type)
    payload = {"type": kind, "data": {} if data is None else data}
    return (json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


class LineDecoder:
    """Incremental decoder turning byte or text chunks into messages."""

    def __init__(self, *, source: str = "stream") -> None:
        self._source = source
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[Message]:
        text = self._utf8.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        messages: list[Message] = []
        for line in lines:
            message = self._parse_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def _parse_line(self, line: str) -> Message | None:
        if not line.strip():
            return None
        try:
            decoded = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("%s dropped malformed line: %s (%s)", self._source, line[:200], exc)
            return None
        if not isinstance(decoded, dict) or not isinstance(decoded.get("type"), str):
            logger.warning("%s dropped message without type: %s", self._source, line[:200])
            return None
        return decoded


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_host_event(message: Message) -> HostEvent | None:
    """Map one decoded host message to its typed event, or None if unusable."""
    kind = message.get("type")
    data = message.get("data")
    payload = data if isinstance(data, dict) else {}

    if kind == HostMessage.READY.value:
        return HostReady()
    if kind == HostMessage.BOUNDARY_SET.value:
        return BoundarySet(path=str(payload.get("path", "")))
    if kind == HostMessage.SPAWNED.value:
        pid = _as_int(payload.get("pid"))
        if pid is None:
            logger.warning("spawned message without pid: %s", message)
            return None
        return ShellSpawned(pid=pid, cwd=str(payload.get("cwd", "")), shell=str(payload.get("shell", "")))
    if kind == HostMessage.DATA.value:
        if isinstance(data, str):
            return ShellOutput(data=data)
        logger.warning("data message with non-text payload dropped")
        return None
    if kind == HostMessage.EXIT.value:
        return ShellExited(exit_code=_as_int(payload.get("exitCode")), signal=_as_int(payload.get("signal")))
    if kind == HostMessage.ERROR.value:
        return HostFailed(
            message=str(payload.get("message", "Unknown host error")),
            code=str(payload.get("code", "")),
        )
    logger.warning("unknown host message type=%s", kind)
    return None
