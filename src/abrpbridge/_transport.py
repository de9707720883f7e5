"""HTTP transport shared by the OAuth, REST and ABRP clients."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from abrpbridge._redact import redact_url
from abrpbridge.exceptions import BridgeTransportError

_logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


@dataclass(frozen=True)
class HttpResponse:
    """Status and body of a completed HTTP exchange."""

    status: int
    text: str
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises
        ------
        BridgeTransportError
            If the body is not valid JSON.
        """
        try:
            return json.loads(self.text)
        except json.JSONDecodeError as exc:
            raise BridgeTransportError(
                f"Invalid JSON from {redact_url(self.url)}: {self.text[:200]}",
                status_code=self.status,
                endpoint=self.url,
                body=self.text,
            ) from exc

    def json_object(self) -> dict[str, Any]:
        """Decode the body as a JSON object (anything else yields ``{}``)."""
        try:
            decoded = self.json()
        except BridgeTransportError:
            return {}
        return decoded if isinstance(decoded, dict) else {}

    def raise_for_status(self) -> None:
        if not self.ok:
            raise BridgeTransportError(
                f"HTTP {self.status} from {redact_url(self.url)}: {self.text[:200]}",
                status_code=self.status,
                endpoint=self.url,
                body=self.text,
            )


class Transport(Protocol):
    """Structural transport interface used by the clients.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`AiohttpTransport`) concrete.
    Non-2xx responses are returned, not raised; network failures raise
    :class:`BridgeTransportError`.
    """

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        form: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> HttpResponse:
        ...


class AiohttpTransport:
    """:class:`Transport` backed by a shared :class:`aiohttp.ClientSession`."""

    def __init__(self, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        form: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> HttpResponse:
        _logger.debug("%s %s", method, redact_url(url))
        kwargs: dict[str, Any] = {"headers": dict(headers or {}), "timeout": _DEFAULT_TIMEOUT}
        if params:
            kwargs["params"] = dict(params)
        if form is not None:
            kwargs["data"] = dict(form)
        elif json_body is not None:
            kwargs["json"] = json_body

        try:
            async with self._http.request(method, url, **kwargs) as resp:
                text = await resp.text()
                return HttpResponse(status=resp.status, text=text, url=str(resp.url))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise BridgeTransportError(
                f"Request to {redact_url(url)} failed: {exc}",
                endpoint=url,
            ) from exc
