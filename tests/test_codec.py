"""Tests for the indicator wire codec."""

from __future__ import annotations

import pytest

from capsync.const import UNKNOWN_ORIGIN
from capsync.protocol.codec import (
    CodecError,
    EmptyPayload,
    MalformedPayload,
    SyncMessage,
    decode_sync_message,
    encode_sync_message,
)


@pytest.mark.parametrize("state", [True, False])
def test_round_trip(state: bool) -> None:
    message = decode_sync_message(encode_sync_message(state, "laptop-1"))
    assert message == SyncMessage(state=state, origin="laptop-1")


def test_encode_layout() -> None:
    assert encode_sync_message(True, "A") == b"\x01A"
    assert encode_sync_message(False, "bob") == b"\x00bob"


def test_non_one_state_byte_means_off() -> None:
    message = decode_sync_message(bytes([0x02]) + b"x")
    assert message.state is False
    assert message.origin == "x"


def test_lone_state_byte_has_unknown_origin() -> None:
    message = decode_sync_message(b"\x01")
    assert message.state is True
    assert message.origin == UNKNOWN_ORIGIN


def test_empty_payload_raises() -> None:
    with pytest.raises(EmptyPayload):
        decode_sync_message(b"")


def test_invalid_utf8_origin_raises() -> None:
    with pytest.raises(MalformedPayload):
        decode_sync_message(b"\x01\xff\xfe")


def test_codec_errors_are_value_errors() -> None:
    assert issubclass(EmptyPayload, CodecError)
    assert issubclass(MalformedPayload, CodecError)
    assert issubclass(CodecError, ValueError)


def test_utf8_origin_is_preserved() -> None:
    payload = encode_sync_message(True, "café")
    assert payload == b"\x01caf\xc3\xa9"
    assert decode_sync_message(bytearray(payload)).origin == "café"
