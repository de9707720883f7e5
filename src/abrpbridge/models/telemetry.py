"""ABRP telemetry record."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


class FieldKind(StrEnum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"


class Telemetry(BaseModel):
    """One telemetry record in ABRP ``tlm`` shape.

    ``utc`` (epoch seconds) is always present; every other field is
    independently optional. The same model carries partial records coming
    out of the mapping engine and full snapshots sent to ABRP.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    utc: int
    soc: float | None = None
    is_charging: bool | None = None
    is_plugged_in: bool | None = None
    power: float | None = None
    charging_power: float | None = None
    remaining_charge_time: float | None = None
    remaining_range: float | None = None
    lat: float | None = None
    lon: float | None = None
    elevation: float | None = None
    heading: float | None = None
    speed: float | None = None
    tire_pressure_fl: float | None = None
    tire_pressure_fr: float | None = None
    tire_pressure_rl: float | None = None
    tire_pressure_rr: float | None = None

    def present_fields(self) -> dict[str, Any]:
        """Fields carrying a value, ``utc`` included."""
        return self.model_dump(exclude_none=True)


TIMESTAMP_FIELD = "utc"
MANDATORY_FIELD = "soc"

FIELD_KINDS: dict[str, FieldKind] = {
    name: (
        FieldKind.TIMESTAMP
        if name == TIMESTAMP_FIELD
        else FieldKind.BOOLEAN
        if name in {"is_charging", "is_plugged_in"}
        else FieldKind.NUMBER
    )
    for name in Telemetry.model_fields
}
