"""Bridge configuration for abrpbridge."""

from __future__ import annotations

import dataclasses
import json
import os
from pathlib import Path
from typing import Any

from abrpbridge._constants import (
    DEFAULT_CONTAINER_NAME,
    DEFAULT_TOKENS_PATH,
    DEVICE_CODE_ENDPOINT,
    REST_BASE_URL,
    STREAM_HOST,
    STREAM_PORT,
    TOKEN_ENDPOINT,
)
from abrpbridge.exceptions import BridgeConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Streaming connection settings.

    ``source`` selects the topic layout: ``"provider"`` subscribes to the
    CarData stream directly (``<gcid>/<vin>/#``, password = ID token),
    ``"mirror"`` subscribes to a local broker that republishes the raw
    stream under ``<topic_prefix>raw/<vin>/#``.
    """

    enabled: bool = True
    source: str = "provider"
    host: str = STREAM_HOST
    port: int = STREAM_PORT
    tls: bool = True
    keepalive: int = 60
    client_id: str | None = None
    username: str | None = None
    password: str | None = None
    topic_prefix: str = "bmw/"


@dataclasses.dataclass(frozen=True)
class RestSettings:
    """Polling settings for the CarData REST API."""

    enabled: bool = False
    base_url: str = REST_BASE_URL
    interval_seconds: float = 300.0
    container_name: str = DEFAULT_CONTAINER_NAME
    technical_descriptors: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class BridgeConfig:
    """Bridge configuration.

    Parameters
    ----------
    abrp_api_key : str
        ABRP API key sent as ``Authorization: APIKEY <key>``.
    abrp_user_token : str
        ABRP per-vehicle user token.
    vin : str
        Vehicle identification number; the streaming topic and REST
        resource are derived from it.
    client_id : str or None
        OAuth client id. Without it tokens cannot be refreshed.
    gcid : str or None
        Provider account id, used as the MQTT username in provider mode.
    token_endpoint : str
        OAuth token endpoint (refresh and device-code grants).
    device_code_endpoint : str
        OAuth device authorization endpoint.
    tokens_path : str
        JSON file holding the persisted credential set.
    mapping_path : str or None
        JSON file holding the telemetry mapping.
    rate_limit_seconds : float
        Minimum seconds between two ABRP pushes.
    refresh_check_seconds : float
        Interval of the token expiry check timer.
    refresh_grace_seconds : float
        Refresh tokens that expire within this window.
    shutdown_grace_seconds : float
        Upper bound on waiting for connections to close at shutdown.
    """

    abrp_api_key: str = ""
    abrp_user_token: str = ""
    vin: str = ""
    client_id: str | None = None
    gcid: str | None = None
    token_endpoint: str = TOKEN_ENDPOINT
    device_code_endpoint: str = DEVICE_CODE_ENDPOINT
    tokens_path: str = DEFAULT_TOKENS_PATH
    mapping_path: str | None = None
    rate_limit_seconds: float = 10.0
    refresh_check_seconds: float = 60.0
    refresh_grace_seconds: float = 300.0
    shutdown_grace_seconds: float = 5.0
    log_level: str = "INFO"
    mqtt: MqttSettings = dataclasses.field(default_factory=MqttSettings)
    rest: RestSettings = dataclasses.field(default_factory=RestSettings)

    @classmethod
    def from_env(cls, **overrides: Any) -> BridgeConfig:
        """Create configuration from environment variables.

        Reads ``ABRP_API_KEY``, ``ABRP_USER_TOKEN``, ``CARDATA_VIN`` and the
        optional ``CARDATA_*`` / ``MQTT_*`` / ``REST_*`` variables. Explicit
        keyword arguments override environment values. Presence of required
        values is checked separately with :meth:`require`, since the
        authorization command needs a different subset than the bridge.

        Raises
        ------
        BridgeConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "ABRP_API_KEY": "abrp_api_key",
            "ABRP_USER_TOKEN": "abrp_user_token",
            "CARDATA_VIN": "vin",
            "CARDATA_CLIENT_ID": "client_id",
            "CARDATA_GCID": "gcid",
            "CARDATA_TOKEN_ENDPOINT": "token_endpoint",
            "CARDATA_DEVICE_CODE_ENDPOINT": "device_code_endpoint",
            "CARDATA_TOKENS_PATH": "tokens_path",
            "BRIDGE_MAPPING_PATH": "mapping_path",
            "BRIDGE_LOG_LEVEL": "log_level",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "BRIDGE_RATE_LIMIT_SECONDS": "rate_limit_seconds",
            "CARDATA_REFRESH_CHECK_SECONDS": "refresh_check_seconds",
            "CARDATA_REFRESH_GRACE_SECONDS": "refresh_grace_seconds",
            "BRIDGE_SHUTDOWN_GRACE_SECONDS": "shutdown_grace_seconds",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _parse_float(env_key, val)

        if "mqtt" not in overrides:
            mqtt_kwargs: dict[str, Any] = {
                "enabled": _env_bool(env.get("MQTT_ENABLED"), True),
                "tls": _env_bool(env.get("MQTT_TLS"), True),
            }
            for env_key, field_name in {
                "MQTT_SOURCE": "source",
                "MQTT_HOST": "host",
                "MQTT_CLIENT_ID": "client_id",
                "MQTT_USERNAME": "username",
                "MQTT_PASSWORD": "password",
                "MQTT_TOPIC_PREFIX": "topic_prefix",
            }.items():
                val = env.get(env_key)
                if val is not None:
                    mqtt_kwargs[field_name] = val
            if (port := env.get("MQTT_PORT")) is not None:
                mqtt_kwargs["port"] = int(_parse_float("MQTT_PORT", port))
            if (keepalive := env.get("MQTT_KEEPALIVE")) is not None:
                mqtt_kwargs["keepalive"] = int(_parse_float("MQTT_KEEPALIVE", keepalive))
            config_kwargs["mqtt"] = MqttSettings(**mqtt_kwargs)

        if "rest" not in overrides:
            rest_kwargs: dict[str, Any] = {"enabled": _env_bool(env.get("REST_ENABLED"), False)}
            if (base_url := env.get("REST_BASE_URL")) is not None:
                rest_kwargs["base_url"] = base_url
            if (interval := env.get("REST_INTERVAL_SECONDS")) is not None:
                rest_kwargs["interval_seconds"] = _parse_float("REST_INTERVAL_SECONDS", interval)
            if (name := env.get("REST_CONTAINER_NAME")) is not None:
                rest_kwargs["container_name"] = name
            if (descriptors := env.get("REST_TECHNICAL_DESCRIPTORS")) is not None:
                rest_kwargs["technical_descriptors"] = _env_list(descriptors)
            config_kwargs["rest"] = RestSettings(**rest_kwargs)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

    def require(self, *field_names: str) -> None:
        """Raise :class:`BridgeConfigError` unless every named field is a non-empty string."""
        for name in field_names:
            value = getattr(self, name, None)
            if not isinstance(value, str) or not value.strip():
                raise BridgeConfigError(f"Missing or invalid config field: {name}")


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise BridgeConfigError(f"{name} must be numeric (got: {value!r})") from exc


def load_mapping_file(path: str | Path) -> dict[str, Any]:
    """Read a raw telemetry mapping document from a JSON file."""
    resolved = Path(path)
    try:
        raw = json.loads(resolved.read_text(encoding="utf-8"))
    except OSError as exc:
        raise BridgeConfigError(f"Cannot read mapping file {resolved}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise BridgeConfigError(f"Mapping file {resolved} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise BridgeConfigError(f"Mapping file {resolved} must contain a JSON object")
    # Allow either a bare mapping or a document with a top-level "mapping" key.
    nested = raw.get("mapping")
    return nested if isinstance(nested, dict) else raw
