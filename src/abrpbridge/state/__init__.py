"""Telemetry state merging."""

from abrpbridge.state.aggregator import TelemetryAggregator, TelemetrySink
from abrpbridge.state.events import IngestionSource

__all__ = ["IngestionSource", "TelemetryAggregator", "TelemetrySink"]
