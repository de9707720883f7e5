"""Data models for abrpbridge."""

from abrpbridge.models.credentials import CredentialSet, DeviceAuthorizationSession
from abrpbridge.models.telemetry import (
    FIELD_KINDS,
    MANDATORY_FIELD,
    TIMESTAMP_FIELD,
    FieldKind,
    Telemetry,
)

__all__ = [
    "FIELD_KINDS",
    "MANDATORY_FIELD",
    "TIMESTAMP_FIELD",
    "CredentialSet",
    "DeviceAuthorizationSession",
    "FieldKind",
    "Telemetry",
]
