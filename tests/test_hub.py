"""Tests for the hub coordinator."""

from __future__ import annotations

import dataclasses

import pytest
from mocks import FakeIndicator, MemoryBroker, MemoryTransport

from capsync.config.settings import RuntimeConfig
from capsync.const import ROLE_HUB
from capsync.protocol.codec import decode_sync_message, encode_sync_message
from capsync.services.hub import HubCoordinator
from capsync.state.context import ConnectionStatus, create_runtime_state


@pytest.fixture()
def hub_config(runtime_config: RuntimeConfig) -> RuntimeConfig:
    return dataclasses.replace(runtime_config, role=ROLE_HUB, peer_name="hub", event_queue_limit=2)


def _make_hub(config: RuntimeConfig, indicator: FakeIndicator | None = None):
    broker = MemoryBroker()
    transport = MemoryTransport(broker)
    indicator = indicator or FakeIndicator()
    state = create_runtime_state(config)
    hub = HubCoordinator(config, state, transport, indicator)
    return hub, transport, indicator, state


@pytest.mark.asyncio
async def test_request_writes_once_and_broadcasts_unchanged(hub_config: RuntimeConfig) -> None:
    hub, transport, indicator, state = _make_hub(hub_config)
    transport.set_session(True)
    assert state.connection is ConnectionStatus.CONNECTED

    hub.submit_request(encode_sync_message(True, "A"))
    await hub.drain()

    assert indicator.writes == [True]
    assert [decode_sync_message(p) for p in transport.broadcasts] == [decode_sync_message(b"\x01A")]
    assert state.indicator_state is True
    assert state.stats.broadcasts == 1
    assert state.stats.requests_received == 1


@pytest.mark.asyncio
async def test_unknown_origin_is_rebroadcast(hub_config: RuntimeConfig) -> None:
    hub, transport, _, _ = _make_hub(hub_config)
    transport.set_session(True)

    await hub.handle_request(b"\x00")

    assert transport.broadcasts == [b"\x00Unknown"]


@pytest.mark.asyncio
async def test_broadcast_survives_hardware_failure(hub_config: RuntimeConfig) -> None:
    hub, transport, _, state = _make_hub(hub_config, FakeIndicator(fail_writes=True))
    transport.set_session(True)

    await hub.handle_request(encode_sync_message(False, "B"))

    assert state.stats.hardware_write_failures == 1
    assert len(transport.broadcasts) == 1
    assert state.indicator_state is None


@pytest.mark.asyncio
async def test_malformed_request_is_discarded(hub_config: RuntimeConfig) -> None:
    hub, transport, indicator, state = _make_hub(hub_config)
    transport.set_session(True)

    await hub.handle_request(b"")

    assert indicator.writes == []
    assert transport.broadcasts == []
    assert state.stats.decode_failures == 1


@pytest.mark.asyncio
async def test_broadcast_failure_is_logged(hub_config: RuntimeConfig, caplog: pytest.LogCaptureFixture) -> None:
    hub, transport, indicator, state = _make_hub(hub_config)

    await hub.handle_request(encode_sync_message(True, "A"))

    assert indicator.writes == [True]
    assert state.stats.broadcasts == 0
    assert "Broadcast failed" in caplog.text


def test_request_queue_is_bounded(hub_config: RuntimeConfig) -> None:
    hub, _, _, state = _make_hub(hub_config)
    for _ in range(3):
        hub.submit_request(b"\x01A")
    assert state.stats.queue_overflows == 1
