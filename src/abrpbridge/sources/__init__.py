"""Ingestion sources: MQTT streaming and REST polling."""

from abrpbridge.sources.mqtt import (
    EVENT_CONNECT,
    EVENT_DISCONNECT,
    EVENT_ERROR,
    EVENT_MESSAGE,
    PahoStreamConnection,
    StreamBootstrap,
    StreamConnection,
    build_stream_bootstrap,
    build_subscribe_topic,
    paho_connection_factory,
)
from abrpbridge.sources.rest import CarDataRestClient

__all__ = [
    "EVENT_CONNECT",
    "EVENT_DISCONNECT",
    "EVENT_ERROR",
    "EVENT_MESSAGE",
    "CarDataRestClient",
    "PahoStreamConnection",
    "StreamBootstrap",
    "StreamConnection",
    "build_stream_bootstrap",
    "build_subscribe_topic",
    "paho_connection_factory",
]
