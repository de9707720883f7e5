"""Normalization helpers.

Centralizes lenient coercion of provider values. Every helper returns
``None`` when the value cannot be coerced; callers omit the field.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on", "charging", "plugged"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", "idle", "unplugged"})

# Epoch values above this are milliseconds.
_MS_THRESHOLD = 1e11


def to_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            finite = math.isfinite(value)
        except OverflowError:
            # JSON integers are unbounded; values past float range are uncoercible.
            return None
        return value if finite else None
    if isinstance(value, str):
        text = value.strip()
        # float() also accepts "1_000", which is not JSON number text.
        if not text or "_" in text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
        return result if math.isfinite(result) else None
    return None


def to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    return None


def _parse_iso8601(text: str) -> datetime | None:
    candidate = text.strip()
    if candidate.endswith(("Z", "z")):
        candidate = f"{candidate[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_epoch_seconds(value: Any) -> int | None:
    """Normalize a timestamp to integer epoch seconds.

    - numbers and numeric strings are taken as epoch seconds
      (milliseconds when > 1e11)
    - ISO-8601 strings are parsed (naive values are UTC)
    - anything else -> None
    """
    numeric = to_number(value)
    if numeric is not None:
        ts = float(numeric)
        if ts > _MS_THRESHOLD:
            ts /= 1000.0
        return math.floor(ts)
    if isinstance(value, str):
        parsed = _parse_iso8601(value)
        if parsed is not None:
            return math.floor(parsed.timestamp())
    return None
