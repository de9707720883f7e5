"""abrpbridge - forward BMW CarData vehicle telemetry to A Better Route Planner."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("abrpbridge")
except PackageNotFoundError:
    __version__ = "0+local"
from abrpbridge.auth import CredentialStore, DeviceAuthorizationFlow, DeviceFlowState, TokenManager
from abrpbridge.config import BridgeConfig, MqttSettings, RestSettings
from abrpbridge.exceptions import (
    BridgeAuthError,
    BridgeConfigError,
    BridgeError,
    BridgeTransportError,
    DeviceAuthorizationError,
    MappingError,
)
from abrpbridge.mapping import extract_telemetry, load_mapping
from abrpbridge.models import CredentialSet, Telemetry
from abrpbridge.rate_limit import RateGate
from abrpbridge.sink import AbrpClient
from abrpbridge.state import IngestionSource, TelemetryAggregator
from abrpbridge.supervisor import SourceSupervisor

__all__ = [
    "AbrpClient",
    "BridgeAuthError",
    "BridgeConfig",
    "BridgeConfigError",
    "BridgeError",
    "BridgeTransportError",
    "CredentialSet",
    "CredentialStore",
    "DeviceAuthorizationError",
    "DeviceAuthorizationFlow",
    "DeviceFlowState",
    "IngestionSource",
    "MappingError",
    "MqttSettings",
    "RateGate",
    "RestSettings",
    "SourceSupervisor",
    "Telemetry",
    "TelemetryAggregator",
    "TokenManager",
    "__version__",
    "extract_telemetry",
    "load_mapping",
]
