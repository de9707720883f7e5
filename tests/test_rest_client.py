from __future__ import annotations

import json
from typing import Any

import pytest

from abrpbridge._transport import HttpResponse
from abrpbridge.exceptions import BridgeConfigError, BridgeTransportError
from abrpbridge.sources import CarDataRestClient

BASE = "https://api.test/cardata"


class _FakeTransport:
    def __init__(self, *responses: HttpResponse) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def request(self, method: str, url: str, **kwargs: Any) -> HttpResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.responses.pop(0)


def _client(transport: _FakeTransport, descriptors: tuple[str, ...] = (), token: str = "tok-1") -> CarDataRestClient:
    return CarDataRestClient(
        transport,
        base_url=f"{BASE}/",
        vin="WBA00000000000001",
        access_token=lambda: token,
        container_name="abrp-live-connector",
        technical_descriptors=descriptors,
    )


def _containers(*containers: dict[str, str]) -> HttpResponse:
    return HttpResponse(200, json.dumps({"containers": list(containers)}))


@pytest.mark.asyncio
async def test_resolve_reuses_active_container() -> None:
    transport = _FakeTransport(
        _containers(
            {"containerId": "c-old", "name": "abrp-live-connector", "state": "DELETED"},
            {"containerId": "c-1", "name": "abrp-live-connector", "state": "ACTIVE"},
        )
    )

    assert await _client(transport).resolve_container_id() == "c-1"

    call = transport.calls[0]
    assert call["url"] == f"{BASE}/customers/containers"
    assert call["headers"]["Authorization"] == "Bearer tok-1"
    assert call["headers"]["x-version"] == "v1"


@pytest.mark.asyncio
async def test_resolve_creates_container_from_descriptors() -> None:
    transport = _FakeTransport(_containers(), HttpResponse(201, '{"containerId": "c-new"}'))
    client = _client(transport, descriptors=("vehicle.drivetrain.batteryManagement.header",))

    assert await client.resolve_container_id() == "c-new"

    create = transport.calls[1]
    assert create["method"] == "POST"
    assert create["json_body"] == {
        "name": "abrp-live-connector",
        "purpose": "abrp",
        "technicalDescriptors": ["vehicle.drivetrain.batteryManagement.header"],
    }


@pytest.mark.asyncio
async def test_resolve_without_descriptors_is_a_config_error() -> None:
    with pytest.raises(BridgeConfigError):
        await _client(_FakeTransport(_containers())).resolve_container_id()


@pytest.mark.asyncio
async def test_fetch_telematic_data() -> None:
    body = {"telematicData": {"vehicle.drivetrain.batteryManagement.header": {"value": "64", "unit": "%"}}}
    transport = _FakeTransport(HttpResponse(200, json.dumps(body)))

    data = await _client(transport).fetch_telematic_data("c-1")

    assert data == body["telematicData"]
    call = transport.calls[0]
    assert call["url"] == f"{BASE}/customers/vehicles/WBA00000000000001/telematicData"
    assert call["params"] == {"containerId": "c-1"}


@pytest.mark.asyncio
async def test_unauthorized_response_is_flagged() -> None:
    transport = _FakeTransport(HttpResponse(401, "expired"))

    with pytest.raises(BridgeTransportError) as excinfo:
        await _client(transport).fetch_telematic_data("c-1")

    assert excinfo.value.is_unauthorized


@pytest.mark.asyncio
async def test_missing_telematic_data_yields_empty_mapping() -> None:
    transport = _FakeTransport(HttpResponse(200, "{}"))
    assert await _client(transport).fetch_telematic_data("c-1") == {}
