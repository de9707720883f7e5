"""Custom exception hierarchy for abrpbridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all abrpbridge errors."""


class BridgeConfigError(BridgeError):
    """Invalid or missing configuration."""


class MappingError(BridgeConfigError):
    """Telemetry mapping or path expression could not be parsed."""


class BridgeTransportError(BridgeError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body
        super().__init__(message)

    @property
    def is_unauthorized(self) -> bool:
        """Whether the server rejected the access token (HTTP 401)."""
        return self.status_code == 401


class BridgeAuthError(BridgeError):
    """Credential acquisition or refresh failed."""


class DeviceAuthorizationError(BridgeAuthError):
    """Device-code authorization flow misuse or failure."""
