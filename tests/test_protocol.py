"""Tests for frame encoding and decoding."""
import json

import pytest

from hushroom import protocol
from hushroom.errors import FrameError


def test_encode_frame_envelope():
    frame = protocol.encode_frame(protocol.USER_COUNT, {"count": 2})
    assert json.loads(frame) == {"type": "user count", "payload": {"count": 2}}


def test_decode_frame():
    event, payload = protocol.decode_frame('{"type": "typing", "payload": {"isTyping": true}}')
    assert event == protocol.TYPING
    assert payload == {"isTyping": True}


def test_decode_frame_accepts_utf8_bytes():
    raw = json.dumps({"type": "chat message", "payload": {"message": "héllo"}}).encode("utf-8")
    assert protocol.decode_frame(raw) == ("chat message", {"message": "héllo"})


@pytest.mark.parametrize("payload", [None, "text", [1, 2], 5])
def test_decode_frame_defaults_missing_payload(payload):
    raw = json.dumps({"type": "update alias", "payload": payload})
    assert protocol.decode_frame(raw) == ("update alias", {})


def test_decode_frame_without_payload_key():
    assert protocol.decode_frame('{"type": "typing"}') == ("typing", {})


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2, 3]",
    '"chat message"',
    '{"payload": {}}',
    '{"type": 7, "payload": {}}',
    '{"type": "", "payload": {}}',
    b"\xff\xfe",
])
def test_decode_frame_rejects_malformed(raw):
    with pytest.raises(FrameError):
        protocol.decode_frame(raw)


def test_outbound_helpers():
    assert protocol.to_all("e", {}).scope == protocol.SCOPE_ALL
    excluded = protocol.to_all_except("A", "e", {})
    assert (excluded.scope, excluded.connection_id) == (protocol.SCOPE_EXCEPT, "A")
    only = protocol.to_only("A", "e", {})
    assert (only.scope, only.connection_id) == (protocol.SCOPE_ONLY, "A")


@pytest.mark.parametrize("raw", [
    '{"type": "chat message", "payload": {"message": ' + "1" * 5000 + "}}",
    "[" * 30000 + "]" * 30000,
])
def test_decode_frame_rejects_oversized_numbers_and_deep_nesting(raw):
    with pytest.raises(FrameError):
        protocol.decode_frame(raw)
