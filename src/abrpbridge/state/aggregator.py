"""Latest-known telemetry snapshot and the push gate in front of ABRP.

This is the only component allowed to merge partial telemetry records.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from abrpbridge.models.telemetry import MANDATORY_FIELD, TIMESTAMP_FIELD, Telemetry
from abrpbridge.rate_limit import RateGate
from abrpbridge.state.events import IngestionSource

_logger = logging.getLogger(__name__)

#: Minimum seconds between two "not ready" warnings.
READINESS_LOG_WINDOW_SECONDS = 10.0


class TelemetrySink(Protocol):
    async def push(self, telemetry: Telemetry) -> bool:
        ...


def _merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> None:
    """Field-level overwrite. Patches never carry ``None``, so known values are never cleared."""
    if not patch:
        return
    target.update(copy.deepcopy(patch))


class TelemetryAggregator:
    """Single-vehicle snapshot fed by every ingestion source.

    Given the same sequence of :meth:`apply` calls and clock readings the
    aggregator produces the same pushes.
    """

    def __init__(
        self,
        sink: TelemetrySink,
        rate_gate: RateGate,
        *,
        clock: Callable[[], float] = time.time,
        readiness_log_window: float = READINESS_LOG_WINDOW_SECONDS,
    ) -> None:
        self._sink = sink
        self._rate_gate = rate_gate
        self._clock = clock
        self._readiness_log_window = readiness_log_window
        self._data: dict[str, Any] = {}
        self._missed_since_log = 0
        self._last_readiness_log: float | None = None

    @property
    def data(self) -> dict[str, Any]:
        """Copy of the merged fields."""
        return copy.deepcopy(self._data)

    @property
    def is_ready(self) -> bool:
        return self._data.get(MANDATORY_FIELD) is not None

    def snapshot(self, now: float | None = None) -> Telemetry | None:
        """Full snapshot stamped with *now*, or ``None`` while nothing was merged."""
        if not self._data:
            return None
        stamp = int(self._clock() if now is None else now)
        return Telemetry(**{**self._data, TIMESTAMP_FIELD: stamp})

    async def apply(self, partial: Telemetry, source: IngestionSource) -> bool:
        """Merge *partial* and push the snapshot if the gates allow it.

        Returns ``True`` when a push was made and the sink accepted it.
        """
        _merge_patch(self._data, partial.present_fields())
        now = self._clock()

        if not self.is_ready:
            self._note_not_ready(now, source)
            return False

        if not self._rate_gate.permit(int(now)):
            _logger.debug("Rate limit active; skipping push (source=%s)", source)
            return False

        snapshot = self.snapshot(now)
        assert snapshot is not None  # noqa: S101
        try:
            sent = await self._sink.push(snapshot)
        except Exception:
            _logger.exception("Telemetry push failed (source=%s)", source)
            return False
        if not sent:
            _logger.warning("Telemetry push rejected (source=%s)", source)
        return sent

    def _note_not_ready(self, now: float, source: IngestionSource) -> None:
        self._missed_since_log += 1
        last = self._last_readiness_log
        if last is not None and now - last < self._readiness_log_window:
            return
        _logger.warning(
            "Telemetry missing %s; skipped %d update(s), latest from %s",
            MANDATORY_FIELD,
            self._missed_since_log,
            source,
        )
        self._last_readiness_log = now
        self._missed_since_log = 0
