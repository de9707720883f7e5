"""Send-interval gate."""

from __future__ import annotations


class RateGate:
    """Permit at most one send per ``interval_seconds``.

    The gate never reads a clock; callers pass non-decreasing timestamps.
    """

    __slots__ = ("_interval", "_last_permitted")

    def __init__(self, interval_seconds: float) -> None:
        if interval_seconds < 0:
            raise ValueError(f"interval_seconds must be >= 0, got {interval_seconds}")
        self._interval = float(interval_seconds)
        self._last_permitted: float | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def last_permitted(self) -> float | None:
        return self._last_permitted

    def permit(self, now: float) -> bool:
        if self._last_permitted is None or now - self._last_permitted >= self._interval:
            self._last_permitted = now
            return True
        return False
