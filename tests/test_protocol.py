from __future__ import annotations

import json

from splitmux.events import BoundarySet, HostFailed, HostReady, ShellExited, ShellOutput, ShellSpawned
from splitmux.protocol import BridgeMessage, LineDecoder, encode_message, parse_host_event


def test_encode_message_is_one_compact_json_line() -> None:
    payload = encode_message(BridgeMessage.RESIZE, {"cols": 120, "rows": 40})

    assert payload == b'{"type":"resize","data":{"cols":120,"rows":40}}\n'
    assert encode_message("kill") == b'{"type":"kill","data":{}}\n'


def test_encode_message_keeps_text_payload_and_unicode() -> None:
    payload = encode_message("data", "héllo\r\n")

    assert payload.endswith(b"\n")
    assert payload.count(b"\n") == 1
    assert json.loads(payload.decode("utf-8")) == {"type": "data", "data": "héllo\r\n"}


def test_partial_line_across_two_chunks_yields_exactly_one_message() -> None:
    decoder = LineDecoder()
    line = encode_message("spawned", {"pid": 42, "cwd": "/vault", "shell": "bash"})

    assert decoder.feed(line[:17]) == []
    assert decoder.pending != ""
    messages = decoder.feed(line[17:])

    assert messages == [{"type": "spawned", "data": {"pid": 42, "cwd": "/vault", "shell": "bash"}}]
    assert decoder.pending == ""


def test_multibyte_character_split_between_chunks_is_preserved() -> None:
    decoder = LineDecoder()
    line = encode_message("data", "→ done")
    cut = line.index("→".encode("utf-8")) + 1

    assert decoder.feed(line[:cut]) == []
    assert decoder.feed(line[cut:]) == [{"type": "data", "data": "→ done"}]


def test_several_lines_in_one_chunk_keep_order_and_trailing_fragment() -> None:
    decoder = LineDecoder()
    chunk = encode_message("ready") + encode_message("data", "a") + b'{"type":"da'

    messages = decoder.feed(chunk)

    assert [item["type"] for item in messages] == ["ready", "data"]
    assert decoder.pending == '{"type":"da'


def test_malformed_and_untyped_lines_are_dropped() -> None:
    decoder = LineDecoder(source="test")

    messages = decoder.feed(b'not json\n\n[1,2]\n{"data":1}\n{"type":"ready","data":{}}\n')

    assert messages == [{"type": "ready", "data": {}}]
    assert decoder.pending == ""


def test_decoder_accepts_text_chunks() -> None:
    decoder = LineDecoder()

    assert decoder.feed('{"type":"write","data":"ls\\n"}\n') == [{"type": "write", "data": "ls\n"}]


def test_parse_host_event_maps_each_message_kind() -> None:
    assert parse_host_event({"type": "ready", "data": {}}) == HostReady()
    assert parse_host_event({"type": "boundary-set", "data": {"path": "/vault"}}) == BoundarySet(path="/vault")
    assert parse_host_event({"type": "spawned", "data": {"pid": 7, "cwd": "/w", "shell": "zsh"}}) == ShellSpawned(
        pid=7, cwd="/w", shell="zsh"
    )
    assert parse_host_event({"type": "data", "data": "out"}) == ShellOutput(data="out")
    assert parse_host_event({"type": "exit", "data": {"exitCode": 0, "signal": None}}) == ShellExited(
        exit_code=0, signal=None
    )
    assert parse_host_event({"type": "error", "data": {"message": "nope", "code": "INVALID_CWD"}}) == HostFailed(
        message="nope", code="INVALID_CWD"
    )


def test_parse_host_event_rejects_unusable_messages() -> None:
    assert parse_host_event({"type": "spawned", "data": {"pid": "x"}}) is None
    assert parse_host_event({"type": "data", "data": {"text": "x"}}) is None
    assert parse_host_event({"type": "bogus", "data": {}}) is None
    assert parse_host_event({"type": "exit", "data": {"exitCode": True}}) == ShellExited(exit_code=None)
