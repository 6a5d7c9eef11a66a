"""Protocol helper utilities for capsync."""

from .codec import (
    CodecError,
    EmptyPayload,
    MalformedPayload,
    SyncMessage,
    decode_sync_message,
    encode_sync_message,
)
from .topics import Topic, availability_topic, notification_topic, request_topic, topic_path

__all__ = [
    "CodecError",
    "EmptyPayload",
    "MalformedPayload",
    "SyncMessage",
    "Topic",
    "decode_sync_message",
    "encode_sync_message",
    "availability_topic",
    "notification_topic",
    "request_topic",
    "topic_path",
]
