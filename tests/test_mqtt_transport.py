"""Tests for the MQTT transport using a fake aiomqtt client."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import AsyncIterator
from typing import Any

import aiomqtt
import pytest
import tenacity
from mocks import wait_until

from capsync.config.settings import RuntimeConfig
from capsync.const import AVAILABILITY_OFFLINE, AVAILABILITY_ONLINE, ROLE_HUB
from capsync.transport.base import TransportStartupError, TransportUnavailable
from capsync.transport.mqtt import MqttTransport, configure_tls_context


class _Message:
    def __init__(self, topic: str, payload: bytes) -> None:
        self.topic = aiomqtt.Topic(topic)
        self.payload = payload


class FakeClient:
    """Stands in for aiomqtt.Client; records traffic and replays inbound messages."""

    instances: list["FakeClient"] = []
    inbound: list[_Message] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.subscriptions: list[str] = []
        self.published: list[tuple[str, bytes, bool]] = []
        FakeClient.instances.append(self)

    async def __aenter__(self) -> "FakeClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append(topic)

    async def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False, **_: Any) -> None:
        self.published.append((topic, payload, retain))

    @property
    def messages(self) -> AsyncIterator[_Message]:
        return self._messages()

    async def _messages(self) -> AsyncIterator[_Message]:
        for message in list(FakeClient.inbound):
            yield message
        await asyncio.Event().wait()


class RefusingClient(FakeClient):
    async def __aenter__(self) -> "FakeClient":
        raise aiomqtt.MqttError("connection refused")


@pytest.fixture()
def fake_client(monkeypatch: pytest.MonkeyPatch) -> type[FakeClient]:
    FakeClient.instances = []
    FakeClient.inbound = []
    monkeypatch.setattr(aiomqtt, "Client", FakeClient)
    return FakeClient


def _fast_retries(transport: MqttTransport, monkeypatch: pytest.MonkeyPatch) -> None:
    build = transport._build_retryer

    def _build() -> tenacity.AsyncRetrying:
        retryer = build()
        retryer.wait = tenacity.wait_none()
        return retryer

    monkeypatch.setattr(transport, "_build_retryer", _build)


def test_topics_follow_prefix(runtime_config: RuntimeConfig) -> None:
    transport = MqttTransport(dataclasses.replace(runtime_config, mqtt_topic="home/caps"))
    assert transport.availability_topic == "home/caps/hub/status"
    assert transport.request_topic == "home/caps/indicator/request"
    assert transport.notification_topic == "home/caps/indicator/state"


def test_tls_disabled_returns_none(runtime_config: RuntimeConfig) -> None:
    assert configure_tls_context(runtime_config) is None


def test_tls_missing_cafile_fails(runtime_config: RuntimeConfig) -> None:
    config = dataclasses.replace(runtime_config, mqtt_tls=True, mqtt_cafile="/nonexistent/ca.pem")
    with pytest.raises(RuntimeError, match="TLS"):
        configure_tls_context(config)


@pytest.mark.asyncio
async def test_outbound_requires_session(runtime_config: RuntimeConfig) -> None:
    transport = MqttTransport(runtime_config)
    with pytest.raises(TransportUnavailable):
        await transport.send_request(b"\x01A")
    with pytest.raises(TransportUnavailable):
        await transport.broadcast(b"\x01A")
    with pytest.raises(TransportUnavailable):
        await transport.subscribe_notifications()


def test_availability_changes_are_deduplicated(runtime_config: RuntimeConfig) -> None:
    transport = MqttTransport(runtime_config)
    transport.request_service()
    seen: list[bool] = []
    transport.on_availability(seen.append)
    transport._client = FakeClient()

    transport._dispatch(aiomqtt.Topic(transport.availability_topic), AVAILABILITY_ONLINE)
    transport._dispatch(aiomqtt.Topic(transport.availability_topic), AVAILABILITY_ONLINE)
    transport._dispatch(aiomqtt.Topic(transport.availability_topic), b"garbage")
    transport._dispatch(aiomqtt.Topic(transport.availability_topic), AVAILABILITY_OFFLINE)

    assert seen == [True, False]


def test_dispatch_routes_payloads(runtime_config: RuntimeConfig) -> None:
    transport = MqttTransport(runtime_config)
    requests: list[bytes] = []
    notifications: list[bytes] = []
    transport.on_request(requests.append)
    transport.on_notification(notifications.append)

    transport._dispatch(aiomqtt.Topic(transport.request_topic), b"\x01A")
    transport._dispatch(aiomqtt.Topic(transport.notification_topic), b"\x00B")
    transport._dispatch(aiomqtt.Topic("elsewhere/topic"), b"\x01C")

    assert requests == [b"\x01A"]
    assert notifications == [b"\x00B"]


@pytest.mark.asyncio
async def test_startup_failure_is_fatal(
    runtime_config: RuntimeConfig,
    fake_client: type[FakeClient],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(aiomqtt, "Client", RefusingClient)
    transport = MqttTransport(runtime_config)
    _fast_retries(transport, monkeypatch)

    with pytest.raises(TransportStartupError, match="after 2 attempts"):
        await transport.run()

    assert len(fake_client.instances) == 2
    assert transport.fsm_state == MqttTransport.STATE_DISCONNECTED


@pytest.mark.asyncio
async def test_hub_session_announces_and_accepts_requests(
    runtime_config: RuntimeConfig,
    fake_client: type[FakeClient],
) -> None:
    config = dataclasses.replace(runtime_config, role=ROLE_HUB, peer_name="hub")
    transport = MqttTransport(config)
    transport.offer_service()
    requests: list[bytes] = []
    sessions: list[bool] = []
    transport.on_request(requests.append)
    transport.on_availability(sessions.append)
    fake_client.inbound = [_Message(transport.request_topic, b"\x01A")]

    task = asyncio.create_task(transport.run())
    await wait_until(lambda: bool(requests))

    client = fake_client.instances[0]
    will = client.kwargs["will"]
    assert will.topic == transport.availability_topic
    assert will.payload == AVAILABILITY_OFFLINE
    assert will.retain is True
    assert client.subscriptions == [transport.request_topic]
    assert client.published[0] == (transport.availability_topic, AVAILABILITY_ONLINE, True)
    assert sessions == [True]
    assert transport.is_ready

    await transport.broadcast(b"\x01A")
    assert client.published[-1] == (transport.notification_topic, b"\x01A", False)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert client.published[-1] == (transport.availability_topic, AVAILABILITY_OFFLINE, True)
    assert sessions == [True, False]
    assert transport.fsm_state == MqttTransport.STATE_DISCONNECTED


@pytest.mark.asyncio
async def test_client_session_tracks_hub_and_notifications(
    runtime_config: RuntimeConfig,
    fake_client: type[FakeClient],
) -> None:
    transport = MqttTransport(runtime_config)
    transport.request_service()
    availability: list[bool] = []
    transport.on_availability(availability.append)
    fake_client.inbound = [_Message(transport.availability_topic, AVAILABILITY_ONLINE)]

    task = asyncio.create_task(transport.run())
    try:
        await wait_until(lambda: availability == [True])

        client = fake_client.instances[0]
        assert client.kwargs["will"] is None
        assert client.subscriptions == [transport.availability_topic]

        await transport.subscribe_notifications()
        await transport.send_request(b"\x00A")
        assert client.subscriptions[-1] == transport.notification_topic
        assert client.published == [(transport.request_topic, b"\x00A", False)]
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert availability == [True, False]
