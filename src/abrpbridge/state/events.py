"""Ingestion source labels.

Both ingestion paths hand partial telemetry to the aggregator tagged with
one of these labels. The label is informational: there is no source
priority, the last applied value wins per field.
"""

from __future__ import annotations

from enum import StrEnum


class IngestionSource(StrEnum):
    MQTT = "mqtt"
    REST = "rest"
