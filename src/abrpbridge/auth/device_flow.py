"""OAuth device authorization grant (interactive credential bootstrap).

State machine::

    INIT -> CODE_REQUESTED -> POLLING -> AUTHORIZED
                                      -> DENIED
                                      -> EXPIRED
         (any network/HTTP failure)   -> TRANSPORT_FAILED

The flow is linear and runs once per instance. Clock and sleep are
injectable so the polling schedule can be exercised without real delays.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from pydantic import ValidationError

from abrpbridge._constants import (
    DEFAULT_DEVICE_CODE_EXPIRES_IN,
    DEVICE_CODE_GRANT_TYPE,
    DEVICE_CODE_SCOPE,
    MANUAL_VERIFY_URL,
    MIN_POLL_INTERVAL_SECONDS,
    SLOW_DOWN_STEP_SECONDS,
)
from abrpbridge._redact import redact_for_log
from abrpbridge._transport import HttpResponse, Transport
from abrpbridge.auth.store import CredentialStore
from abrpbridge.exceptions import BridgeTransportError, DeviceAuthorizationError
from abrpbridge.mapping.normalize import to_number
from abrpbridge.models.credentials import CredentialSet, DeviceAuthorizationSession

_logger = logging.getLogger(__name__)


class DeviceFlowState(StrEnum):
    INIT = "init"
    CODE_REQUESTED = "code_requested"
    POLLING = "polling"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    EXPIRED = "expired"
    TRANSPORT_FAILED = "transport_failed"


TERMINAL_STATES = frozenset(
    {
        DeviceFlowState.AUTHORIZED,
        DeviceFlowState.DENIED,
        DeviceFlowState.EXPIRED,
        DeviceFlowState.TRANSPORT_FAILED,
    }
)


@dataclass(frozen=True)
class DeviceFlowResult:
    """Terminal outcome of a device authorization attempt."""

    state: DeviceFlowState
    credentials: CredentialSet | None = None
    error: str | None = None
    status: int | None = None
    body: str | None = None

    @property
    def ok(self) -> bool:
        return self.state == DeviceFlowState.AUTHORIZED


def _log_prompt(session: DeviceAuthorizationSession) -> None:
    _logger.info(
        "Complete authorization in the browser: url=%s manual_url=%s user_code=%s",
        session.verification_url,
        MANUAL_VERIFY_URL,
        session.user_code,
    )


class DeviceAuthorizationFlow:
    def __init__(
        self,
        *,
        transport: Transport,
        store: CredentialStore,
        client_id: str,
        device_code_endpoint: str,
        token_endpoint: str,
        scope: str = DEVICE_CODE_SCOPE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_prompt: Callable[[DeviceAuthorizationSession], None] = _log_prompt,
    ) -> None:
        self._transport = transport
        self._store = store
        self._client_id = client_id
        self._device_code_endpoint = device_code_endpoint
        self._token_endpoint = token_endpoint
        self._scope = scope
        self._clock = clock
        self._sleep = sleep
        self._on_prompt = on_prompt
        self._state = DeviceFlowState.INIT

    @property
    def state(self) -> DeviceFlowState:
        return self._state

    def _transition(self, state: DeviceFlowState) -> None:
        _logger.debug("Device flow %s -> %s", self._state, state)
        self._state = state

    def _finish(self, state: DeviceFlowState, **details: object) -> DeviceFlowResult:
        self._transition(state)
        return DeviceFlowResult(state=state, **details)  # type: ignore[arg-type]

    async def run(self) -> DeviceFlowResult:
        """Drive the flow to a terminal state.

        Raises
        ------
        DeviceAuthorizationError
            If the flow was already run, or the authorized credentials
            cannot be written to the store.
        """
        if self._state != DeviceFlowState.INIT:
            raise DeviceAuthorizationError(f"Device flow already ran (state={self._state})")

        try:
            session = await self._request_code()
        except BridgeTransportError as exc:
            _logger.error("Device code request rejected: %s", exc)
            return self._finish(
                DeviceFlowState.TRANSPORT_FAILED,
                error=str(exc),
                status=exc.status_code,
                body=exc.body,
            )

        self._transition(DeviceFlowState.CODE_REQUESTED)
        self._on_prompt(session)
        return await self._poll(session)

    async def _request_code(self) -> DeviceAuthorizationSession:
        response = await self._transport.request(
            "POST",
            self._device_code_endpoint,
            form={"client_id": self._client_id, "scope": self._scope},
        )
        response.raise_for_status()
        payload = response.json_object()
        _logger.debug("Device code response: %s", redact_for_log(payload))

        device_code = payload.get("device_code")
        user_code = payload.get("user_code")
        if not isinstance(device_code, str) or not device_code or not isinstance(user_code, str) or not user_code:
            raise BridgeTransportError(
                "Device code response missing required details",
                status_code=response.status,
                endpoint=self._device_code_endpoint,
                body=response.text,
            )

        verification_url = (
            payload.get("verification_uri_complete") or payload.get("verification_uri") or MANUAL_VERIFY_URL
        )
        return DeviceAuthorizationSession(
            device_code=device_code,
            user_code=user_code,
            verification_url=str(verification_url),
            interval=to_number(payload.get("interval")) or MIN_POLL_INTERVAL_SECONDS,
            expires_in=to_number(payload.get("expires_in")) or DEFAULT_DEVICE_CODE_EXPIRES_IN,
        )

    async def _poll(self, session: DeviceAuthorizationSession) -> DeviceFlowResult:
        deadline = self._clock() + session.expires_in
        interval = max(session.interval, MIN_POLL_INTERVAL_SECONDS)
        self._transition(DeviceFlowState.POLLING)

        while self._clock() < deadline:
            await self._sleep(interval)
            if self._clock() >= deadline:
                break

            try:
                response = await self._transport.request(
                    "POST",
                    self._token_endpoint,
                    form={
                        "grant_type": DEVICE_CODE_GRANT_TYPE,
                        "device_code": session.device_code,
                        "client_id": self._client_id,
                    },
                )
            except BridgeTransportError as exc:
                _logger.error("Device code polling failed: %s", exc)
                return self._finish(DeviceFlowState.TRANSPORT_FAILED, error=str(exc), status=exc.status_code)

            payload = response.json_object()
            if response.ok and payload.get("access_token"):
                return self._authorize(payload, response)

            error = payload.get("error")
            if not isinstance(error, str) or not error:
                # No OAuth error code: a gateway/server failure, not a user decision.
                _logger.error("Device code polling got an unexpected response (%s)", response.status)
                return self._finish(
                    DeviceFlowState.TRANSPORT_FAILED,
                    error=f"unexpected_response_{response.status}",
                    status=response.status,
                    body=response.text,
                )
            if error == "authorization_pending":
                _logger.info("Waiting for user authorization")
                continue
            if error == "slow_down":
                interval += SLOW_DOWN_STEP_SECONDS
                _logger.warning("Device code polling slowed down; interval=%ss", interval)
                continue

            _logger.error("Device authorization denied: %s", error)
            return self._finish(DeviceFlowState.DENIED, error=error, status=response.status, body=response.text)

        _logger.error("Device code expired before authorization completed")
        return self._finish(DeviceFlowState.EXPIRED, error="expired_token")

    def _authorize(self, payload: dict[str, object], response: HttpResponse) -> DeviceFlowResult:
        try:
            credentials = CredentialSet.from_token_response(dict(payload))
        except ValidationError:
            _logger.error("Token response is missing access/refresh/id tokens")
            return self._finish(
                DeviceFlowState.DENIED,
                error="incomplete_token_response",
                status=response.status,
                body=response.text,
            )

        try:
            self._store.save(credentials.to_document())
        except OSError as exc:
            raise DeviceAuthorizationError(
                f"Failed to write tokens to {self._store.path}: {exc}",
            ) from exc

        _logger.info("Tokens stored at %s", self._store.path)
        return self._finish(DeviceFlowState.AUTHORIZED, credentials=credentials)
