"""CarData REST client used by the polling source.

Endpoints:
  - GET  /customers/containers
  - POST /customers/containers
  - GET  /customers/vehicles/{vin}/telematicData?containerId=...
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import quote

from abrpbridge._constants import DEFAULT_CONTAINER_PURPOSE, REST_API_VERSION
from abrpbridge._transport import HttpResponse, Transport
from abrpbridge.exceptions import BridgeConfigError, BridgeTransportError

_logger = logging.getLogger(__name__)


class CarDataRestClient:
    """Authenticated REST calls; the access token is read fresh on every request."""

    def __init__(
        self,
        transport: Transport,
        *,
        base_url: str,
        vin: str,
        access_token: Callable[[], str],
        container_name: str,
        technical_descriptors: Sequence[str] = (),
    ) -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._vin = vin
        self._access_token = access_token
        self._container_name = container_name
        self._technical_descriptors = tuple(technical_descriptors)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token()}",
            "x-version": REST_API_VERSION,
        }

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response: HttpResponse = await self._transport.request(
            method,
            f"{self._base_url}{path}",
            headers={**self._headers(), **kwargs.pop("headers", {})},
            **kwargs,
        )
        if not response.ok:
            raise BridgeTransportError(
                f"CarData REST request failed ({response.status}): {response.text[:200]}",
                status_code=response.status,
                endpoint=path,
                body=response.text,
            )
        return response.json()

    async def list_containers(self) -> list[dict[str, Any]]:
        data = await self._request_json("GET", "/customers/containers")
        containers = data.get("containers") if isinstance(data, dict) else None
        if not isinstance(containers, list):
            return []
        return [c for c in containers if isinstance(c, dict)]

    async def create_container(self) -> str:
        data = await self._request_json(
            "POST",
            "/customers/containers",
            headers={"Content-Type": "application/json"},
            json_body={
                "name": self._container_name,
                "purpose": DEFAULT_CONTAINER_PURPOSE,
                "technicalDescriptors": list(self._technical_descriptors),
            },
        )
        container_id = data.get("containerId") if isinstance(data, dict) else None
        if not isinstance(container_id, str) or not container_id:
            raise BridgeTransportError(
                "Container creation succeeded but no containerId was returned",
                endpoint="/customers/containers",
            )
        return container_id

    async def resolve_container_id(self) -> str:
        """Reuse the ACTIVE container with our name, creating it if needed.

        Raises
        ------
        BridgeConfigError
            If no container exists and no technical descriptors are configured.
        BridgeTransportError
            On HTTP failure.
        """
        for container in await self.list_containers():
            if container.get("name") == self._container_name and container.get("state") == "ACTIVE":
                container_id = container.get("containerId")
                if isinstance(container_id, str) and container_id:
                    return container_id

        if not self._technical_descriptors:
            raise BridgeConfigError(
                f"Container {self._container_name!r} not found and no technical descriptors were provided",
            )

        _logger.info("Creating CarData container %s", self._container_name)
        return await self.create_container()

    async def fetch_telematic_data(self, container_id: str) -> dict[str, Any]:
        """Return the ``telematicData`` mapping (``{descriptor: {value, unit, timestamp}}``)."""
        data = await self._request_json(
            "GET",
            f"/customers/vehicles/{quote(self._vin, safe='')}/telematicData",
            params={"containerId": container_id},
        )
        telematic = data.get("telematicData") if isinstance(data, dict) else None
        if not isinstance(telematic, dict):
            _logger.warning("CarData REST response missing telematicData")
            return {}
        return telematic
