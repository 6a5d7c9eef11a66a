"""Wire codec for indicator sync messages.

Layout: one state byte (``0x01`` on, anything else off) followed by the
UTF-8 origin name. There is no length prefix and no escaping; the origin runs
to the end of the payload.
"""

from __future__ import annotations

from typing import Any, ClassVar

import msgspec
from construct import Construct, GreedyBytes, Int8ub  # type: ignore
from construct import Struct as BinStruct

from ..const import STATE_BYTE_OFF, STATE_BYTE_ON, UNKNOWN_ORIGIN


class CodecError(ValueError):
    """Raised when a payload cannot be turned into a SyncMessage."""


class EmptyPayload(CodecError):
    pass


class MalformedPayload(CodecError):
    pass


class SyncMessage(msgspec.Struct, frozen=True):
    """A state announcement and the name of the peer that caused it."""

    state: bool
    origin: str

    _SCHEMA: ClassVar[Construct[Any]] = BinStruct(
        "flag" / Int8ub,
        "origin" / GreedyBytes,
    )

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> "SyncMessage":
        if not data:
            raise EmptyPayload("Empty payload")

        container: Any = cls._SCHEMA.parse(bytes(data))
        raw_origin: bytes = container.origin
        try:
            origin = raw_origin.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPayload(f"Origin is not valid UTF-8: {exc}") from exc

        return cls(
            state=container.flag == STATE_BYTE_ON,
            origin=origin or UNKNOWN_ORIGIN,
        )

    def encode(self) -> bytes:
        return self._SCHEMA.build(
            {
                "flag": STATE_BYTE_ON if self.state else STATE_BYTE_OFF,
                "origin": self.origin.encode("utf-8"),
            }
        )


def encode_sync_message(state: bool, origin: str) -> bytes:
    return SyncMessage(state=bool(state), origin=origin).encode()


def decode_sync_message(data: bytes | bytearray | memoryview) -> SyncMessage:
    """Decode a wire payload.

    Raises:
        EmptyPayload: ``data`` has no bytes.
        MalformedPayload: the origin bytes are not UTF-8.
    """
    return SyncMessage.decode(data)


__all__ = [
    "CodecError",
    "EmptyPayload",
    "MalformedPayload",
    "SyncMessage",
    "decode_sync_message",
    "encode_sync_message",
]
