from __future__ import annotations

import pytest

from abrpbridge.config import BridgeConfig, MqttSettings
from abrpbridge.exceptions import BridgeConfigError


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ABRP_API_KEY", "key")
    monkeypatch.setenv("ABRP_USER_TOKEN", "user")
    monkeypatch.setenv("CARDATA_VIN", "WBA00000000000001")
    monkeypatch.setenv("CARDATA_CLIENT_ID", "client")
    monkeypatch.setenv("BRIDGE_RATE_LIMIT_SECONDS", "15")
    monkeypatch.setenv("MQTT_SOURCE", "mirror")
    monkeypatch.setenv("MQTT_HOST", "localhost")
    monkeypatch.setenv("MQTT_PORT", "1883")
    monkeypatch.setenv("MQTT_TLS", "false")
    monkeypatch.setenv("REST_ENABLED", "yes")
    monkeypatch.setenv("REST_TECHNICAL_DESCRIPTORS", "a.b, c.d,,")

    config = BridgeConfig.from_env()

    assert config.abrp_api_key == "key"
    assert config.vin == "WBA00000000000001"
    assert config.client_id == "client"
    assert config.rate_limit_seconds == 15.0
    assert config.mqtt.source == "mirror"
    assert (config.mqtt.host, config.mqtt.port, config.mqtt.tls) == ("localhost", 1883, False)
    assert config.rest.enabled is True
    assert config.rest.technical_descriptors == ("a.b", "c.d")


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARDATA_VIN", "FROM_ENV")
    monkeypatch.setenv("BRIDGE_RATE_LIMIT_SECONDS", "15")

    config = BridgeConfig.from_env(vin="FROM_ARG", rate_limit_seconds=1, mqtt=MqttSettings(enabled=False))

    assert config.vin == "FROM_ARG"
    assert config.rate_limit_seconds == 1
    assert config.mqtt.enabled is False


def test_non_numeric_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BRIDGE_RATE_LIMIT_SECONDS", "often")
    with pytest.raises(BridgeConfigError, match="BRIDGE_RATE_LIMIT_SECONDS"):
        BridgeConfig.from_env()


def test_require_reports_missing_field() -> None:
    config = BridgeConfig(abrp_api_key="key", vin="  ")

    config.require("abrp_api_key")
    with pytest.raises(BridgeConfigError, match="vin"):
        config.require("abrp_api_key", "vin")
    with pytest.raises(BridgeConfigError, match="client_id"):
        config.require("client_id")
