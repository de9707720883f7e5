"""MQTT streaming connection, topic derivation and the paho runtime."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import paho.mqtt.client as mqtt

from abrpbridge.config import MqttSettings
from abrpbridge.exceptions import BridgeConfigError
from abrpbridge.models.credentials import CredentialSet

#: Events emitted by a :class:`StreamConnection` and their handler arguments.
EVENT_CONNECT = "connect"  # ()
EVENT_MESSAGE = "message"  # (topic: str, payload: bytes)
EVENT_DISCONNECT = "disconnect"  # (reason: str)
EVENT_ERROR = "error"  # (message: str)

_RECONNECT_DELAY_SECONDS = 5


class StreamConnection(Protocol):
    """Capability interface of a publish/subscribe connection.

    Handlers registered with :meth:`on` are always invoked on the asyncio
    loop thread, so they may touch bridge state directly.
    """

    def on(self, event: str, handler: Callable[..., None]) -> None:
        ...

    def connect(self) -> None:
        ...

    def subscribe(self, topic: str) -> None:
        ...

    def close(self) -> None:
        ...


@dataclass(frozen=True)
class StreamBootstrap:
    """Broker/session data required to open a streaming connection."""

    host: str
    port: int
    tls: bool
    keepalive: int
    client_id: str
    topic: str
    username: str | None
    password: str | None


def _normalize_topic_prefix(prefix: str | None) -> str:
    value = (prefix or "").strip() or "bmw/"
    return value if value.endswith("/") else f"{value}/"


def build_subscribe_topic(settings: MqttSettings, *, vin: str, username: str | None) -> str:
    if settings.source == "mirror":
        return f"{_normalize_topic_prefix(settings.topic_prefix)}raw/{vin}/#"
    if not username:
        raise BridgeConfigError("An MQTT username (gcid) is required when the stream source is 'provider'")
    return f"{username}/{vin}/#"


def build_stream_bootstrap(
    settings: MqttSettings,
    *,
    vin: str,
    credentials: CredentialSet,
    gcid: str | None = None,
) -> StreamBootstrap:
    """Derive connection details from settings and the current credentials.

    In provider mode the username defaults to the account gcid and the
    password to the current ID token, so a rebuilt connection always picks
    up rotated credentials.
    """
    provider = settings.source != "mirror"
    username = settings.username or ((gcid or credentials.gcid) if provider else None)
    password = settings.password or (credentials.id if provider else None)
    client_id = settings.client_id or f"abrp-bridge-{vin[-6:]}-{int(time.time() * 1000)}"
    return StreamBootstrap(
        host=settings.host,
        port=settings.port,
        tls=settings.tls,
        keepalive=settings.keepalive,
        client_id=client_id,
        topic=build_subscribe_topic(settings, vin=vin, username=username),
        username=username,
        password=password,
    )


class PahoStreamConnection:
    """Threaded paho-mqtt connection that dispatches events onto an asyncio loop."""

    def __init__(
        self,
        bootstrap: StreamBootstrap,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._bootstrap = bootstrap
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._handlers: dict[str, list[Callable[..., None]]] = {}
        self._client: mqtt.Client | None = None

    def on(self, event: str, handler: Callable[..., None]) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def _emit(self, event: str, *args: Any) -> None:
        for handler in self._handlers.get(event, []):
            self._loop.call_soon_threadsafe(handler, *args)

    def connect(self) -> None:
        """Start the network loop; paho keeps reconnecting until :meth:`close`."""
        bootstrap = self._bootstrap
        self._logger.info(
            "MQTT connecting host=%s port=%s client_id=%s username=%s has_password=%s",
            bootstrap.host,
            bootstrap.port,
            bootstrap.client_id,
            bootstrap.username,
            bool(bootstrap.password),
        )

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=bootstrap.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if bootstrap.username:
            client.username_pw_set(bootstrap.username, bootstrap.password)
        if bootstrap.tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=_RECONNECT_DELAY_SECONDS, max_delay=_RECONNECT_DELAY_SECONDS)

        def on_connect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._emit(EVENT_ERROR, f"MQTT connect failed: {reason_code}")
                return
            self._emit(EVENT_CONNECT)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._emit(EVENT_MESSAGE, msg.topic, bytes(msg.payload))

        def on_subscribe(
            _c: mqtt.Client,
            _userdata: Any,
            _mid: int,
            reason_codes: list[Any],
            _properties: Any,
        ) -> None:
            failures = [rc for rc in reason_codes if rc.is_failure]
            if failures:
                self._emit(EVENT_ERROR, f"MQTT subscribe failed: {failures}")
            else:
                self._logger.info("MQTT subscribed topic=%s", bootstrap.topic)

        def on_disconnect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._emit(EVENT_DISCONNECT, str(reason_code))

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_subscribe = on_subscribe
        client.on_disconnect = on_disconnect

        client.connect_async(bootstrap.host, bootstrap.port, keepalive=bootstrap.keepalive)
        client.loop_start()
        self._client = client

    def subscribe(self, topic: str) -> None:
        client = self._client
        if client is None:
            return
        self._logger.debug("MQTT subscribing topic=%s", topic)
        client.subscribe(topic, qos=0)

    def close(self) -> None:
        """Disconnect and join the network thread (blocking)."""
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


def paho_connection_factory(
    loop: asyncio.AbstractEventLoop,
    logger: logging.Logger | None = None,
) -> Callable[[StreamBootstrap], StreamConnection]:
    def factory(bootstrap: StreamBootstrap) -> StreamConnection:
        return PahoStreamConnection(bootstrap, loop=loop, logger=logger)

    return factory
