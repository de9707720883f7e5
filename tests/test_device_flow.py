from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from abrpbridge._transport import HttpResponse
from abrpbridge.auth import CredentialStore, DeviceAuthorizationFlow, DeviceFlowState
from abrpbridge.exceptions import BridgeTransportError, DeviceAuthorizationError
from abrpbridge.models import DeviceAuthorizationSession

CODE_URL = "https://auth.test/device/code"
TOKEN_URL = "https://auth.test/token"


def _json(status: int, body: dict[str, Any]) -> HttpResponse:
    return HttpResponse(status, json.dumps(body))


def _code_response(interval: float = 5, expires_in: float = 600) -> HttpResponse:
    return _json(
        200,
        {
            "device_code": "dev-1",
            "user_code": "ABCD-EFGH",
            "verification_uri_complete": "https://verify.test/?code=ABCD-EFGH",
            "interval": interval,
            "expires_in": expires_in,
        },
    )


TOKENS = {"access_token": "acc", "refresh_token": "ref", "id_token": "idt", "gcid": "gcid-9"}


class _ScriptedTransport:
    """Return queued responses per URL and record the fake clock at each call."""

    def __init__(self, clock: _Clock, responses: dict[str, list[HttpResponse | Exception]]) -> None:
        self.clock = clock
        self.responses = responses
        self.calls: list[tuple[float, str, dict[str, Any]]] = []

    async def request(self, method: str, url: str, **kwargs: Any) -> HttpResponse:
        self.calls.append((self.clock.now, url, kwargs))
        response = self.responses[url].pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _flow(
    tmp_path: Path,
    clock: _Clock,
    responses: dict[str, list[HttpResponse | Exception]],
    prompts: list[DeviceAuthorizationSession] | None = None,
) -> tuple[DeviceAuthorizationFlow, _ScriptedTransport, CredentialStore]:
    transport = _ScriptedTransport(clock, responses)
    store = CredentialStore(tmp_path / "tokens.json")
    flow = DeviceAuthorizationFlow(
        transport=transport,
        store=store,
        client_id="client-1",
        device_code_endpoint=CODE_URL,
        token_endpoint=TOKEN_URL,
        clock=clock,
        sleep=clock.sleep,
        on_prompt=(prompts.append if prompts is not None else lambda _session: None),
    )
    return flow, transport, store


@pytest.mark.asyncio
async def test_pending_then_success_stores_tokens(tmp_path: Path) -> None:
    clock = _Clock()
    prompts: list[DeviceAuthorizationSession] = []
    flow, transport, store = _flow(
        tmp_path,
        clock,
        {
            CODE_URL: [_code_response()],
            TOKEN_URL: [_json(400, {"error": "authorization_pending"}), _json(200, TOKENS)],
        },
        prompts,
    )

    result = await flow.run()

    assert result.ok
    assert flow.state == DeviceFlowState.AUTHORIZED
    assert result.credentials is not None
    assert result.credentials.gcid == "gcid-9"
    assert prompts[0].user_code == "ABCD-EFGH"
    assert prompts[0].verification_url == "https://verify.test/?code=ABCD-EFGH"
    assert store.load() == {"access": "acc", "refresh": "ref", "id": "idt", "gcid": "gcid-9", "raw": TOKENS}

    code_call = transport.calls[0][2]["form"]
    assert code_call == {"client_id": "client-1", "scope": "authenticate_user openid cardata:api:read cardata:streaming:read"}
    poll_form = transport.calls[1][2]["form"]
    assert poll_form["grant_type"] == "urn:ietf:params:oauth:grant-type:device_code"
    assert poll_form["device_code"] == "dev-1"


@pytest.mark.asyncio
async def test_slow_down_increases_interval(tmp_path: Path) -> None:
    clock = _Clock()
    flow, transport, _store = _flow(
        tmp_path,
        clock,
        {
            CODE_URL: [_code_response(interval=5)],
            TOKEN_URL: [_json(400, {"error": "slow_down"}), _json(200, TOKENS)],
        },
    )

    result = await flow.run()

    assert result.state == DeviceFlowState.AUTHORIZED
    poll_times = [at for at, url, _ in transport.calls if url == TOKEN_URL]
    assert poll_times[1] - poll_times[0] >= 10
    assert clock.sleeps == [5, 10]


@pytest.mark.asyncio
async def test_interval_has_a_floor(tmp_path: Path) -> None:
    clock = _Clock()
    flow, _transport, _store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [_code_response(interval=1)], TOKEN_URL: [_json(200, TOKENS)]},
    )

    await flow.run()

    assert clock.sleeps == [5]


@pytest.mark.asyncio
async def test_access_denied_is_terminal(tmp_path: Path) -> None:
    clock = _Clock()
    flow, _transport, store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [_code_response()], TOKEN_URL: [_json(400, {"error": "access_denied"})]},
    )

    result = await flow.run()

    assert result.state == DeviceFlowState.DENIED
    assert result.error == "access_denied"
    assert result.status == 400
    assert store.load() == {}


@pytest.mark.asyncio
async def test_code_expires_while_pending(tmp_path: Path) -> None:
    clock = _Clock()
    pending = _json(400, {"error": "authorization_pending"})
    flow, transport, _store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [_code_response(interval=5, expires_in=12)], TOKEN_URL: [pending, pending, pending]},
    )

    result = await flow.run()

    assert result.state == DeviceFlowState.EXPIRED
    assert len([c for c in transport.calls if c[1] == TOKEN_URL]) == 2


@pytest.mark.asyncio
async def test_code_request_failure_reports_status_and_body(tmp_path: Path) -> None:
    clock = _Clock()
    flow, _transport, _store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [HttpResponse(401, '{"error": "invalid_client"}')]},
    )

    result = await flow.run()

    assert result.state == DeviceFlowState.TRANSPORT_FAILED
    assert result.status == 401
    assert result.body == '{"error": "invalid_client"}'


@pytest.mark.asyncio
async def test_network_failure_while_polling(tmp_path: Path) -> None:
    clock = _Clock()
    flow, _transport, _store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [_code_response()], TOKEN_URL: [BridgeTransportError("connection reset")]},
    )

    result = await flow.run()

    assert result.state == DeviceFlowState.TRANSPORT_FAILED
    assert "connection reset" in (result.error or "")


@pytest.mark.asyncio
async def test_incomplete_token_response_is_denied(tmp_path: Path) -> None:
    clock = _Clock()
    flow, _transport, _store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [_code_response()], TOKEN_URL: [_json(200, {"access_token": "only-access"})]},
    )

    result = await flow.run()

    assert result.state == DeviceFlowState.DENIED
    assert result.error == "incomplete_token_response"


@pytest.mark.asyncio
async def test_flow_runs_only_once(tmp_path: Path) -> None:
    clock = _Clock()
    flow, _transport, _store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [_code_response()], TOKEN_URL: [_json(200, TOKENS)]},
    )
    await flow.run()

    with pytest.raises(DeviceAuthorizationError):
        await flow.run()


@pytest.mark.asyncio
async def test_server_error_without_oauth_code_is_a_transport_failure(tmp_path: Path) -> None:
    clock = _Clock()
    flow, _transport, store = _flow(
        tmp_path,
        clock,
        {CODE_URL: [_code_response()], TOKEN_URL: [HttpResponse(503, "<html>Service Unavailable</html>")]},
    )

    result = await flow.run()

    assert result.state == DeviceFlowState.TRANSPORT_FAILED
    assert result.status == 503
    assert result.body == "<html>Service Unavailable</html>"
    assert store.load() == {}
