"""OAuth credential models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CredentialSet(BaseModel):
    """The authoritative access/refresh/ID token triple.

    Parameters
    ----------
    access : str
        Bearer token for the REST API.
    refresh : str
        Token exchanged for a new set at the token endpoint.
    id : str
        ID token; carries the ``exp`` claim and doubles as the streaming
        password.
    gcid : str or None
        Provider account id returned by the token endpoint.
    raw : dict or None
        Last raw token endpoint response.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access: str = Field(min_length=1)
    refresh: str = Field(min_length=1)
    id: str = Field(min_length=1)
    gcid: str | None = None
    raw: dict[str, Any] | None = None

    @classmethod
    def from_token_response(
        cls,
        response: dict[str, Any],
        previous: CredentialSet | None = None,
    ) -> CredentialSet:
        """Build a set from a token endpoint response.

        Tokens missing from *response* keep their value from *previous*.
        """

        def pick(key: str, fallback: str | None) -> Any:
            value = response.get(key)
            return value if isinstance(value, str) and value else fallback

        return cls(
            access=pick("access_token", previous.access if previous else None),
            refresh=pick("refresh_token", previous.refresh if previous else None),
            id=pick("id_token", previous.id if previous else None),
            gcid=pick("gcid", previous.gcid if previous else None),
            raw=response,
        )

    def to_document(self) -> dict[str, Any]:
        """Flat key-value document written to the credential store."""
        return self.model_dump(exclude_none=True)


class DeviceAuthorizationSession(BaseModel):
    """Ephemeral state of one device-code authorization attempt."""

    model_config = ConfigDict(frozen=True)

    device_code: str
    user_code: str
    verification_url: str
    interval: float
    expires_in: float
