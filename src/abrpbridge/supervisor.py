"""Ingestion supervisor.

Owns:
- the MQTT stream connection (rebuilt whenever credentials rotate)
- the REST polling task and its container id
- the token expiry timer
- fan-in of decoded payloads into the telemetry aggregator
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import threading
from collections.abc import Callable, Coroutine
from typing import Any

from abrpbridge._redact import redact_for_log
from abrpbridge.auth.tokens import TokenManager
from abrpbridge.config import MqttSettings
from abrpbridge.exceptions import BridgeConfigError, BridgeTransportError
from abrpbridge.mapping.engine import MappingSpec, extract_telemetry
from abrpbridge.sources.mqtt import (
    EVENT_CONNECT,
    EVENT_DISCONNECT,
    EVENT_ERROR,
    EVENT_MESSAGE,
    StreamBootstrap,
    StreamConnection,
    build_stream_bootstrap,
)
from abrpbridge.sources.rest import CarDataRestClient
from abrpbridge.state.aggregator import TelemetryAggregator
from abrpbridge.state.events import IngestionSource

_logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[StreamBootstrap], StreamConnection]


def _resolve(future: asyncio.Future[None], exc: BaseException | None) -> None:
    if future.done():
        return
    if exc is None:
        future.set_result(None)
    else:
        future.set_exception(exc)


async def _run_blocking(fn: Callable[[], None], *, name: str) -> None:
    """Run *fn* in a daemon thread so a stuck transport can never block interpreter exit."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[None] = loop.create_future()

    def runner() -> None:
        error: BaseException | None = None
        try:
            fn()
        except BaseException as exc:  # noqa: BLE001 - handed back to the loop
            error = exc
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_resolve, future, error)

    threading.Thread(target=runner, name=name, daemon=True).start()
    await future


class SourceSupervisor:
    """Keeps telemetry flowing across credential rotation and authorization failures."""

    def __init__(
        self,
        *,
        tokens: TokenManager,
        aggregator: TelemetryAggregator,
        mapping: MappingSpec,
        vin: str,
        mqtt_settings: MqttSettings | None = None,
        connection_factory: ConnectionFactory | None = None,
        gcid: str | None = None,
        rest_client: CarDataRestClient | None = None,
        poll_interval: float = 300.0,
        refresh_check_seconds: float = 60.0,
        refresh_grace_seconds: float = 300.0,
        close_timeout: float = 5.0,
    ) -> None:
        self._tokens = tokens
        self._aggregator = aggregator
        self._mapping = mapping
        self._vin = vin
        self._mqtt_settings = mqtt_settings
        self._connection_factory = connection_factory
        self._gcid = gcid
        self._rest_client = rest_client
        self._poll_interval = poll_interval
        self._refresh_check_seconds = refresh_check_seconds
        self._refresh_grace_seconds = refresh_grace_seconds
        self._close_timeout = close_timeout

        self._connection: StreamConnection | None = None
        self._container_id: str | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._ingest_tasks: set[asyncio.Task[Any]] = set()
        self._started = False
        self._closing = False
        self._stream_lock = asyncio.Lock()

    @property
    def stream_enabled(self) -> bool:
        return (
            self._mqtt_settings is not None
            and self._mqtt_settings.enabled
            and self._connection_factory is not None
        )

    @property
    def connection(self) -> StreamConnection | None:
        return self._connection

    @property
    def container_id(self) -> str | None:
        return self._container_id

    @property
    def is_closing(self) -> bool:
        return self._closing

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the configured sources with the current credentials and start timers."""
        if self._started:
            return
        self._started = True

        if not self.stream_enabled and self._rest_client is None:
            _logger.warning("No ingestion source enabled; nothing will be forwarded")

        # Avoid opening the stream with an ID token that is about to lapse.
        await self._tokens.refresh_if_needed(self._refresh_grace_seconds)

        if self.stream_enabled:
            await self.restart_stream()
        if self._rest_client is not None:
            self._poll_task = asyncio.create_task(self._poll_loop(), name="abrpbridge-poll")
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="abrpbridge-token-refresh")

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Stop timers, close connections, and return within *grace_seconds*.

        Repeated calls are no-ops.
        """
        if self._closing:
            return
        self._closing = True
        _logger.info("Supervisor shutting down")

        # Timers go first so none of them fires into a half-closed supervisor.
        timers = [task for task in (self._refresh_task, self._poll_task) if task is not None]
        self._refresh_task = None
        self._poll_task = None
        for task in timers:
            task.cancel()

        pending: list[asyncio.Future[Any]] = [*timers, *self._ingest_tasks]
        connection = self._connection
        self._connection = None
        if connection is not None:
            pending.append(asyncio.ensure_future(self._close_connection(connection)))

        if not pending:
            return
        _done, still_pending = await asyncio.wait(pending, timeout=grace_seconds)
        if still_pending:
            _logger.warning(
                "Shutdown grace period (%.1fs) elapsed with %d task(s) still closing",
                grace_seconds,
                len(still_pending),
            )
            for task in still_pending:
                task.cancel()

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    async def restart_stream(self) -> bool:
        """Tear down the current stream (if any) and open one with current credentials.

        Rebuilds are serialized, so at most one connection is ever live.
        """
        if self._closing or not self.stream_enabled:
            return False
        async with self._stream_lock:
            return await self._rebuild_stream()

    async def _rebuild_stream(self) -> bool:
        assert self._mqtt_settings is not None  # noqa: S101
        assert self._connection_factory is not None  # noqa: S101

        try:
            bootstrap = build_stream_bootstrap(
                self._mqtt_settings,
                vin=self._vin,
                credentials=self._tokens.credentials,
                gcid=self._gcid,
            )
        except BridgeConfigError as exc:
            _logger.error("MQTT stream disabled: %s", exc)
            return False

        previous = self._connection
        self._connection = None
        if previous is not None:
            _logger.info("Rebuilding MQTT stream with current credentials")
            await self._close_connection(previous)
        if self._closing:
            return False

        connection = self._connection_factory(bootstrap)
        self._wire(connection, bootstrap.topic)
        self._connection = connection
        try:
            await _run_blocking(connection.connect, name="abrpbridge-mqtt-connect")
        except Exception:
            _logger.exception("MQTT connect failed")
            return False
        if self._closing:
            # Shutdown ran while connecting; its close may have raced the network loop start.
            await self._close_connection(connection)
            return False
        return True

    def _wire(self, connection: StreamConnection, topic: str) -> None:
        def is_current() -> bool:
            return connection is self._connection

        def on_connect() -> None:
            if not is_current():
                return
            _logger.info("MQTT connected; subscribing topic=%s", topic)
            connection.subscribe(topic)

        def on_message(message_topic: str, payload: bytes) -> None:
            if not is_current():
                return
            _logger.debug("MQTT message topic=%s bytes=%d", message_topic, len(payload))
            self.handle_payload(payload, IngestionSource.MQTT)

        def on_disconnect(reason: str) -> None:
            if is_current() and not self._closing:
                _logger.warning("MQTT connection closed: %s", reason)

        def on_error(message: str) -> None:
            if is_current():
                _logger.error("MQTT error: %s", message)

        connection.on(EVENT_CONNECT, on_connect)
        connection.on(EVENT_MESSAGE, on_message)
        connection.on(EVENT_DISCONNECT, on_disconnect)
        connection.on(EVENT_ERROR, on_error)

    async def _close_connection(self, connection: StreamConnection) -> None:
        try:
            await asyncio.wait_for(
                _run_blocking(connection.close, name="abrpbridge-mqtt-close"),
                self._close_timeout,
            )
        except TimeoutError:
            _logger.warning("MQTT close did not finish within %.1fs", self._close_timeout)
        except Exception:
            _logger.exception("MQTT close failed")

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def handle_payload(self, payload: bytes | str, source: IngestionSource) -> asyncio.Task[bool] | None:
        """Decode a raw payload and schedule it for aggregation.

        Must be called from the event loop. Invalid payloads are logged and
        dropped.
        """
        try:
            document = json.loads(payload)
        except ValueError as exc:
            _logger.warning("%s payload is not valid JSON: %s", source, exc)
            return None
        if not isinstance(document, dict):
            _logger.warning("%s payload is not a JSON object", source)
            return None
        return self._spawn(self._ingest(document, source))

    def _spawn(self, coro: Coroutine[Any, Any, bool]) -> asyncio.Task[bool]:
        task = asyncio.get_running_loop().create_task(coro)
        self._ingest_tasks.add(task)
        task.add_done_callback(self._ingest_done)
        return task

    def _ingest_done(self, task: asyncio.Task[Any]) -> None:
        self._ingest_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Telemetry ingestion failed", exc_info=exc)

    async def _ingest(self, document: dict[str, Any], source: IngestionSource) -> bool:
        partial = extract_telemetry(document, self._mapping)
        _logger.debug("Extracted from %s: %s", source, redact_for_log(partial.present_fields()))
        return await self._aggregator.apply(partial, source)

    # ------------------------------------------------------------------
    # REST polling
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                _logger.exception("CarData REST poll tick failed")
            await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> bool:
        """One poll tick. Returns ``True`` when telemetry was handed to the aggregator."""
        rest = self._rest_client
        if rest is None or self._closing:
            return False
        try:
            if self._container_id is None:
                self._container_id = await rest.resolve_container_id()
            telematic = await rest.fetch_telematic_data(self._container_id)
        except BridgeTransportError as exc:
            if exc.is_unauthorized:
                _logger.warning("CarData REST rejected the access token; refreshing")
                await self.handle_unauthorized()
            else:
                _logger.error("CarData REST poll failed: %s", exc)
            return False
        except BridgeConfigError as exc:
            _logger.error("CarData REST poll disabled until reconfigured: %s", exc)
            return False

        if not telematic:
            return False
        await self._ingest({"data": telematic}, IngestionSource.REST)
        return True

    async def handle_unauthorized(self) -> bool:
        """Out-of-band refresh after an authorization failure.

        On success the container id is re-resolved and the stream rebuilt.
        On failure the current resources are kept for the next attempt.
        """
        if not await self._tokens.refresh_now():
            _logger.error("Token refresh after authorization failure did not succeed; keeping current connection")
            return False

        if self._rest_client is not None:
            try:
                self._container_id = await self._rest_client.resolve_container_id()
            except (BridgeTransportError, BridgeConfigError) as exc:
                _logger.error("Container re-resolution failed: %s", exc)
        await self.restart_stream()
        return True

    # ------------------------------------------------------------------
    # Token timer
    # ------------------------------------------------------------------

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_check_seconds)
            try:
                await self.check_tokens()
            except Exception:
                _logger.exception("Token refresh check failed")

    async def check_tokens(self) -> bool:
        """Refresh if close to expiry and rebuild the stream when that happened."""
        if not await self._tokens.refresh_if_needed(self._refresh_grace_seconds):
            return False
        await self.restart_stream()
        return True
