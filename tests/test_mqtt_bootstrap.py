from __future__ import annotations

import pytest

from abrpbridge.config import MqttSettings
from abrpbridge.exceptions import BridgeConfigError
from abrpbridge.models import CredentialSet
from abrpbridge.sources import build_stream_bootstrap, build_subscribe_topic

VIN = "WBA00000000123456"
CREDENTIALS = CredentialSet(access="acc", refresh="ref", id="id-token", gcid="gcid-from-tokens")


def test_provider_topic_is_scoped_to_account_and_vin() -> None:
    settings = MqttSettings(source="provider")
    assert build_subscribe_topic(settings, vin=VIN, username="gcid-1") == f"gcid-1/{VIN}/#"


def test_provider_topic_requires_username() -> None:
    with pytest.raises(BridgeConfigError):
        build_subscribe_topic(MqttSettings(source="provider"), vin=VIN, username=None)


@pytest.mark.parametrize(("prefix", "expected"), [("bmw/", "bmw/"), ("cars", "cars/"), ("", "bmw/")])
def test_mirror_topic_uses_prefix(prefix: str, expected: str) -> None:
    settings = MqttSettings(source="mirror", topic_prefix=prefix)
    assert build_subscribe_topic(settings, vin=VIN, username=None) == f"{expected}raw/{VIN}/#"


def test_provider_bootstrap_uses_gcid_and_id_token() -> None:
    settings = MqttSettings(source="provider", host="broker.test", port=9000, client_id="fixed")

    bootstrap = build_stream_bootstrap(settings, vin=VIN, credentials=CREDENTIALS, gcid="gcid-config")

    assert bootstrap.username == "gcid-config"
    assert bootstrap.password == "id-token"
    assert bootstrap.topic == f"gcid-config/{VIN}/#"
    assert bootstrap.client_id == "fixed"
    assert (bootstrap.host, bootstrap.port) == ("broker.test", 9000)


def test_provider_bootstrap_falls_back_to_token_gcid() -> None:
    bootstrap = build_stream_bootstrap(MqttSettings(source="provider"), vin=VIN, credentials=CREDENTIALS)

    assert bootstrap.username == "gcid-from-tokens"
    assert bootstrap.client_id.startswith("abrp-bridge-123456-")


def test_mirror_bootstrap_uses_configured_login_only() -> None:
    settings = MqttSettings(source="mirror", username="local", password="pw")

    bootstrap = build_stream_bootstrap(settings, vin=VIN, credentials=CREDENTIALS)

    assert (bootstrap.username, bootstrap.password) == ("local", "pw")
    assert bootstrap.topic == f"bmw/raw/{VIN}/#"


def test_mirror_bootstrap_without_login() -> None:
    bootstrap = build_stream_bootstrap(MqttSettings(source="mirror"), vin=VIN, credentials=CREDENTIALS)
    assert bootstrap.username is None
    assert bootstrap.password is None
