"""MQTT topic helpers shared across capsync components.

Every topic string the daemon uses is built here.
"""

from __future__ import annotations

from enum import StrEnum


class Topic(StrEnum):
    HUB = "hub"  # Hub availability
    INDICATOR = "indicator"  # Indicator requests and notifications


def _split_segments(path: str) -> tuple[str, ...]:
    if not path:
        return ()
    return tuple(segment for segment in path.split("/") if segment)


def topic_path(prefix: str, topic: Topic | str, *segments: str) -> str:
    """Join prefix, topic and optional sub-segments into a topic path."""
    parts = list(_split_segments(prefix))
    topic_segment = topic.value if isinstance(topic, Topic) else str(topic)
    topic_segment = topic_segment.strip("/")
    if not topic_segment:
        raise ValueError("topic segment cannot be empty")
    parts.append(topic_segment)
    for segment in segments:
        cleaned = segment.strip("/")
        if cleaned:
            parts.append(cleaned)
    return "/".join(parts)


def availability_topic(prefix: str) -> str:
    """e.g. capsync/hub/status"""
    return topic_path(prefix, Topic.HUB, "status")


def request_topic(prefix: str) -> str:
    """e.g. capsync/indicator/request"""
    return topic_path(prefix, Topic.INDICATOR, "request")


def notification_topic(prefix: str) -> str:
    """e.g. capsync/indicator/state"""
    return topic_path(prefix, Topic.INDICATOR, "state")


__all__ = [
    "Topic",
    "availability_topic",
    "notification_topic",
    "request_topic",
    "topic_path",
]
