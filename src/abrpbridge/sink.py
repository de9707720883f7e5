"""A Better Route Planner telemetry sink."""

from __future__ import annotations

import logging

from abrpbridge._constants import ABRP_TELEMETRY_URL
from abrpbridge._redact import redact_for_log
from abrpbridge._transport import Transport
from abrpbridge.exceptions import BridgeTransportError
from abrpbridge.models.telemetry import Telemetry

_logger = logging.getLogger(__name__)


class AbrpClient:
    """Best-effort ``tlm/send`` client; :meth:`push` never raises on HTTP failures."""

    def __init__(
        self,
        transport: Transport,
        *,
        api_key: str,
        user_token: str,
        url: str = ABRP_TELEMETRY_URL,
    ) -> None:
        self._transport = transport
        self._api_key = api_key
        self._user_token = user_token
        self._url = url

    async def push(self, telemetry: Telemetry) -> bool:
        tlm = telemetry.present_fields()
        _logger.debug("ABRP push: %s", redact_for_log(tlm))
        try:
            response = await self._transport.request(
                "POST",
                self._url,
                params={"token": self._user_token},
                headers={
                    "Authorization": f"APIKEY {self._api_key}",
                    "Content-Type": "application/json",
                },
                json_body={"tlm": tlm},
            )
        except BridgeTransportError as exc:
            _logger.error("ABRP telemetry send failed: %s", exc)
            return False

        if not response.ok:
            _logger.warning("ABRP telemetry rejected: status=%s body=%s", response.status, response.text[:200])
            return False

        _logger.info("ABRP telemetry sent: status=%s soc=%s", response.status, telemetry.soc)
        return True
