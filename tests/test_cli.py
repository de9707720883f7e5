from __future__ import annotations

from pathlib import Path

import pytest

from abrpbridge.__main__ import main


def test_authorize_requires_client_id(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CARDATA_CLIENT_ID", raising=False)
    assert main(["authorize"]) == 1


def test_run_requires_abrp_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ABRP_API_KEY", raising=False)
    assert main(["run"]) == 1


def test_run_requires_bootstrapped_tokens(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    mapping = tmp_path / "mapping.json"
    mapping.write_text('{"soc": ["data[vehicle.drivetrain.batteryManagement.header].value"]}', encoding="utf-8")
    monkeypatch.setenv("ABRP_API_KEY", "key")
    monkeypatch.setenv("ABRP_USER_TOKEN", "user")
    monkeypatch.setenv("CARDATA_VIN", "WBA00000000000001")
    monkeypatch.setenv("BRIDGE_MAPPING_PATH", str(mapping))
    monkeypatch.setenv("CARDATA_TOKENS_PATH", str(tmp_path / "absent.json"))

    assert main(["run"]) == 1


def test_invalid_environment_exits_with_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MQTT_PORT", "not-a-port")
    assert main(["run"]) == 2
