"""Credential bootstrap, persistence and refresh."""

from abrpbridge.auth.device_flow import DeviceAuthorizationFlow, DeviceFlowResult, DeviceFlowState
from abrpbridge.auth.store import CredentialStore
from abrpbridge.auth.tokens import TokenManager, decode_jwt_claims, token_expiry

__all__ = [
    "CredentialStore",
    "DeviceAuthorizationFlow",
    "DeviceFlowResult",
    "DeviceFlowState",
    "TokenManager",
    "decode_jwt_claims",
    "token_expiry",
]
