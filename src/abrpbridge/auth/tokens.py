"""Token lifecycle: expiry tracking and single-flight refresh."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from abrpbridge._redact import redact_for_log
from abrpbridge._transport import Transport
from abrpbridge.auth.store import CredentialStore
from abrpbridge.exceptions import BridgeError, BridgeTransportError
from abrpbridge.models.credentials import CredentialSet

_logger = logging.getLogger(__name__)


def decode_jwt_claims(token: str) -> dict[str, Any] | None:
    """Decode the (unverified) claims segment of a three-part JWT."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    return claims if isinstance(claims, dict) else None


def token_expiry(token: str) -> float | None:
    """Epoch seconds of the ``exp`` claim, or ``None`` if absent or undecodable."""
    claims = decode_jwt_claims(token)
    if claims is None:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


class TokenManager:
    """Owns the authoritative :class:`CredentialSet`.

    Refreshes are single-flight: a call made while an exchange is already
    in progress returns ``False`` without issuing a second request. Refresh
    never raises; failures are logged and reported as ``False``.
    """

    def __init__(
        self,
        credentials: CredentialSet,
        *,
        transport: Transport,
        store: CredentialStore,
        client_id: str | None,
        token_endpoint: str | None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._store = store
        self._client_id = client_id
        self._token_endpoint = token_endpoint
        self._clock = clock
        self._refreshing = False

    @property
    def credentials(self) -> CredentialSet:
        return self._credentials

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def expires_at(self) -> float | None:
        return token_expiry(self._credentials.id)

    def is_expired(self, grace_seconds: float = 60.0) -> bool:
        exp = self.expires_at()
        if exp is None:
            return True
        return exp - self._clock() <= grace_seconds

    async def refresh_if_needed(self, grace_seconds: float = 300.0) -> bool:
        """Refresh when the ID token expires within *grace_seconds*.

        Returns ``True`` only if a refresh actually happened.
        """
        if not self.is_expired(grace_seconds):
            return False
        return await self._refresh()

    async def refresh_now(self) -> bool:
        return await self._refresh()

    async def _refresh(self) -> bool:
        if not self._token_endpoint:
            _logger.debug("Token refresh skipped: no token endpoint configured")
            return False
        if not self._client_id:
            _logger.warning("Token refresh skipped: missing client id")
            return False
        if self._refreshing:
            _logger.debug("Token refresh already in progress")
            return False

        self._refreshing = True
        try:
            _logger.info("Refreshing tokens")
            payload = await self._exchange(self._token_endpoint, self._client_id)
            refreshed = CredentialSet.from_token_response(payload, previous=self._credentials)
            self._store.merge_and_save(refreshed)
            self._credentials = refreshed
        except (BridgeError, ValidationError, OSError) as exc:
            _logger.error("Token refresh failed: %s", exc)
            return False
        finally:
            self._refreshing = False

        _logger.info("Tokens refreshed; new expiry=%s", self.expires_at())
        return True

    async def _exchange(self, endpoint: str, client_id: str) -> dict[str, Any]:
        response = await self._transport.request(
            "POST",
            endpoint,
            form={
                "grant_type": "refresh_token",
                "refresh_token": self._credentials.refresh,
                "client_id": client_id,
            },
        )
        if not response.ok:
            raise BridgeTransportError(
                f"Token refresh failed ({response.status}): {response.text[:200]}",
                status_code=response.status,
                endpoint=endpoint,
                body=response.text,
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise BridgeTransportError("Token endpoint returned a non-object body", endpoint=endpoint)
        _logger.debug("Token endpoint response: %s", redact_for_log(payload))
        return payload
