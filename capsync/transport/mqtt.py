"""MQTT transport for capsync peers.

Topic layout under the configured prefix:

* ``<prefix>/hub/status``: retained ``online``/``offline`` published by the
  hub; the last will publishes ``offline`` when the hub vanishes.
* ``<prefix>/indicator/request``: clients publish, the hub subscribes.
* ``<prefix>/indicator/state``: the hub publishes, clients subscribe once
  the hub is available.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from pathlib import Path
from typing import Any

import aiomqtt
import tenacity
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties
from transitions import Machine

from ..common import log_hexdump
from ..config.settings import RuntimeConfig
from ..const import (
    AVAILABILITY_OFFLINE,
    AVAILABILITY_ONLINE,
    MQTT_RECONNECT_MAX_DELAY,
    MQTT_TLS_MIN_VERSION,
)
from ..protocol.topics import availability_topic, notification_topic, request_topic
from .base import AvailabilityCallback, PayloadCallback, TransportStartupError, TransportUnavailable

logger = logging.getLogger("capsync.mqtt")

_RETRYABLE = (aiomqtt.MqttError, OSError, asyncio.TimeoutError)
_CONTENT_TYPE_BINARY = "application/octet-stream"
_CONTENT_TYPE_TEXT = "text/plain"


def configure_tls_context(config: RuntimeConfig) -> ssl.SSLContext | None:
    """Create an ssl.SSLContext based on the provided RuntimeConfig."""
    if not config.tls_enabled:
        return None

    try:
        if config.mqtt_cafile:
            if not Path(config.mqtt_cafile).exists():
                raise RuntimeError(f"MQTT TLS CA file missing: {config.mqtt_cafile}")
            context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=config.mqtt_cafile)
        else:
            context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

        context.minimum_version = MQTT_TLS_MIN_VERSION

        if config.mqtt_tls_insecure:
            context.check_hostname = False

        if config.mqtt_certfile or config.mqtt_keyfile:
            if not (config.mqtt_certfile and config.mqtt_keyfile):
                raise ValueError("Both mqtt_certfile and mqtt_keyfile must be provided for mTLS.")
            context.load_cert_chain(config.mqtt_certfile, config.mqtt_keyfile)

        return context
    except (OSError, ssl.SSLError, ValueError) as exc:
        raise RuntimeError(f"TLS setup failed: {exc}") from exc


def build_mqtt_connect_properties() -> Properties:
    """Return default CONNECT properties for the aiomqtt client."""

    props = Properties(PacketTypes.CONNECT)
    props.SessionExpiryInterval = 0
    props.RequestProblemInformation = 1
    return props


def build_publish_properties(content_type: str) -> Properties:
    props = Properties(PacketTypes.PUBLISH)
    props.ContentType = content_type
    props.PayloadFormatIndicator = 1 if content_type == _CONTENT_TYPE_TEXT else 0
    return props


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "MQTT connection failed (attempt %d): %s; retrying in %.2fs",
        retry_state.attempt_number,
        exc,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def _payload_bytes(payload: Any) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    return str(payload).encode("utf-8")


class MqttTransport:
    """MQTT transport with FSM-based session state."""

    # FSM States
    STATE_DISCONNECTED = "disconnected"
    STATE_CONNECTING = "connecting"
    STATE_SUBSCRIBING = "subscribing"
    STATE_READY = "ready"

    def __init__(self, config: RuntimeConfig) -> None:
        self.config = config
        self.fsm_state = self.STATE_DISCONNECTED

        self.machine = Machine(
            model=self,
            states=[
                self.STATE_DISCONNECTED,
                self.STATE_CONNECTING,
                self.STATE_SUBSCRIBING,
                self.STATE_READY,
            ],
            initial=self.STATE_DISCONNECTED,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )

        self.machine.add_transition("connect", "*", self.STATE_CONNECTING)
        self.machine.add_transition("connected", self.STATE_CONNECTING, self.STATE_SUBSCRIBING)
        self.machine.add_transition("subscribed", self.STATE_SUBSCRIBING, self.STATE_READY)
        self.machine.add_transition("disconnect", "*", self.STATE_DISCONNECTED)

        prefix = config.mqtt_topic
        self.availability_topic = availability_topic(prefix)
        self.request_topic = request_topic(prefix)
        self.notification_topic = notification_topic(prefix)

        self._offering = False
        self._requesting = False
        self._availability_callbacks: list[AvailabilityCallback] = []
        self._notification_callbacks: list[PayloadCallback] = []
        self._request_callbacks: list[PayloadCallback] = []

        self._client: aiomqtt.Client | None = None
        self._ever_connected = False
        self._hub_online = False
        self._available = False

    # --- Capability registration -------------------------------------

    def offer_service(self) -> None:
        """Act as the hub: announce availability and accept requests."""
        self._offering = True

    def request_service(self) -> None:
        """Act as a client: track hub availability."""
        self._requesting = True

    def on_availability(self, callback: AvailabilityCallback) -> None:
        self._availability_callbacks.append(callback)

    def on_notification(self, callback: PayloadCallback) -> None:
        self._notification_callbacks.append(callback)

    def on_request(self, callback: PayloadCallback) -> None:
        self._request_callbacks.append(callback)

    @property
    def is_ready(self) -> bool:
        return self._client is not None and self.fsm_state == self.STATE_READY

    # --- Outbound ----------------------------------------------------

    async def subscribe_notifications(self) -> None:
        client = self._require_client()
        try:
            await client.subscribe(self.notification_topic, qos=self.config.mqtt_qos)
        except aiomqtt.MqttError as exc:
            raise TransportUnavailable(f"Subscribe to {self.notification_topic} failed: {exc}") from exc
        logger.info("Subscribed to notifications on %s", self.notification_topic)

    async def broadcast(self, payload: bytes) -> None:
        await self._publish(self.notification_topic, payload)

    async def send_request(self, payload: bytes) -> None:
        await self._publish(self.request_topic, payload)

    def _require_client(self) -> aiomqtt.Client:
        client = self._client
        if client is None or not self.is_ready:
            raise TransportUnavailable("MQTT session not established")
        return client

    async def _publish(self, topic: str, payload: bytes) -> None:
        client = self._require_client()
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, f"MQTT PUB > {topic}", payload)
        try:
            await client.publish(
                topic,
                payload,
                qos=self.config.mqtt_qos,
                retain=False,
                properties=build_publish_properties(_CONTENT_TYPE_BINARY),
            )
        except aiomqtt.MqttError as exc:
            raise TransportUnavailable(f"Publish to {topic} failed: {exc}") from exc

    # --- Session management ------------------------------------------

    def _stop_startup_attempts(self, retry_state: tenacity.RetryCallState) -> bool:
        if self._ever_connected:
            return False
        return retry_state.attempt_number >= self.config.mqtt_connect_attempts

    def _build_retryer(self) -> tenacity.AsyncRetrying:
        reconnect_delay = max(1, self.config.reconnect_delay)
        return tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=reconnect_delay, max=MQTT_RECONNECT_MAX_DELAY)
            + tenacity.wait_random(0, 1),
            retry=tenacity.retry_if_exception_type(_RETRYABLE),
            stop=self._stop_startup_attempts,
            before_sleep=_log_retry_attempt,
            reraise=True,
        )

    async def run(self) -> None:
        """Keep a broker session alive until cancelled.

        Raises:
            TransportStartupError: the broker could not be reached within
                ``mqtt_connect_attempts`` before the first session.
        """
        tls_context = configure_tls_context(self.config)

        try:
            while True:
                try:
                    async for attempt in self._build_retryer():
                        with attempt:
                            try:
                                await self._connect_session(tls_context)
                            finally:
                                if self.fsm_state != self.STATE_DISCONNECTED:
                                    self.trigger("disconnect")
                except _RETRYABLE as exc:
                    raise TransportStartupError(
                        f"MQTT broker {self.config.mqtt_host}:{self.config.mqtt_port} unreachable "
                        f"after {self.config.mqtt_connect_attempts} attempts: {exc}"
                    ) from exc
                await asyncio.sleep(self.config.reconnect_delay)
        except asyncio.CancelledError:
            logger.info("MQTT transport stopping.")
            self.trigger("disconnect")
            raise

    def _build_will(self) -> aiomqtt.Will | None:
        if not self._offering:
            return None
        return aiomqtt.Will(
            self.availability_topic,
            AVAILABILITY_OFFLINE,
            qos=1,
            retain=True,
        )

    async def _connect_session(self, tls_context: ssl.SSLContext | None) -> None:
        """Run one broker session.

        Connection failures propagate for retry. Once connected, a lost
        session is logged and the method returns so the backoff restarts.
        """
        if not self.config.mqtt_user:
            logger.warning(
                "MQTT connecting without authentication (anonymous); "
                "consider setting mqtt_user/mqtt_pass for production"
            )

        self.trigger("connect")

        async with aiomqtt.Client(
            hostname=self.config.mqtt_host,
            port=self.config.mqtt_port,
            username=self.config.mqtt_user or None,
            password=self.config.mqtt_pass or None,
            tls_context=tls_context,
            logger=logging.getLogger("capsync.mqtt.client"),
            protocol=aiomqtt.ProtocolVersion.V5,
            will=self._build_will(),
            clean_session=None,
            properties=build_mqtt_connect_properties(),
        ) as client:
            self._client = client
            self._ever_connected = True
            self.trigger("connected")
            logger.info(
                "Connected to MQTT broker %s:%d (MQTTv5).",
                self.config.mqtt_host,
                self.config.mqtt_port,
            )
            try:
                await self._subscribe_topics(client)
                if self._offering:
                    await self._publish_availability(client, AVAILABILITY_ONLINE)
                self.trigger("subscribed")
                self._refresh_availability()
                await self._subscriber_loop(client)
            except aiomqtt.MqttError as exc:
                logger.warning("MQTT session lost: %s", exc)
            except asyncio.CancelledError:
                if self._offering:
                    await self._announce_offline(client)
                raise
            finally:
                self._client = None
                self._hub_online = False
                self._refresh_availability()

    async def _subscribe_topics(self, client: aiomqtt.Client) -> None:
        topics: list[str] = []
        if self._offering:
            topics.append(self.request_topic)
        if self._requesting:
            topics.append(self.availability_topic)

        for topic in topics:
            await client.subscribe(topic, qos=max(1, self.config.mqtt_qos))

        logger.info("Subscribed to %d topics.", len(topics))

    async def _publish_availability(self, client: aiomqtt.Client, payload: bytes) -> None:
        await client.publish(
            self.availability_topic,
            payload,
            qos=1,
            retain=True,
            properties=build_publish_properties(_CONTENT_TYPE_TEXT),
        )
        logger.info("Hub availability announced: %s", payload.decode("ascii"))

    async def _announce_offline(self, client: aiomqtt.Client) -> None:
        try:
            await asyncio.wait_for(self._publish_availability(client, AVAILABILITY_OFFLINE), timeout=1.0)
        except (aiomqtt.MqttError, asyncio.TimeoutError) as exc:
            logger.warning("Could not announce hub offline on shutdown: %s", exc)

    async def _subscriber_loop(self, client: aiomqtt.Client) -> None:
        async for message in client.messages:
            payload = _payload_bytes(message.payload)
            if logger.isEnabledFor(logging.DEBUG):
                log_hexdump(logger, logging.DEBUG, f"MQTT SUB < {message.topic}", payload)

            try:
                self._dispatch(message.topic, payload)
            except (ValueError, TypeError, AttributeError, RuntimeError, KeyError) as e:
                logger.exception("Error processing MQTT topic %s: %s", message.topic, e)

    def _dispatch(self, topic: aiomqtt.Topic, payload: bytes) -> None:
        if topic.matches(self.availability_topic):
            self._handle_availability_payload(payload)
        elif topic.matches(self.request_topic):
            for callback in self._request_callbacks:
                callback(payload)
        elif topic.matches(self.notification_topic):
            for callback in self._notification_callbacks:
                callback(payload)
        else:
            logger.debug("Ignoring message on unexpected topic %s", topic)

    def _handle_availability_payload(self, payload: bytes) -> None:
        value = payload.strip().lower()
        if value == AVAILABILITY_ONLINE:
            self._hub_online = True
        elif value in (AVAILABILITY_OFFLINE, b""):
            self._hub_online = False
        else:
            logger.warning("Unexpected hub availability payload %r; treating as offline", payload)
            self._hub_online = False
        self._refresh_availability()

    def _refresh_availability(self) -> None:
        available = self._client is not None and (self._hub_online or self._offering)
        if available == self._available:
            return
        self._available = available
        logger.info("Hub %s", "available" if available else "unavailable")
        for callback in self._availability_callbacks:
            callback(available)


__all__ = [
    "MqttTransport",
    "build_mqtt_connect_properties",
    "build_publish_properties",
    "configure_tls_context",
]
