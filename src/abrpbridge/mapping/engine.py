"""Declarative extraction of telemetry from arbitrary provider payloads."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, TypeAlias

from abrpbridge.exceptions import MappingError
from abrpbridge.mapping.normalize import to_bool, to_epoch_seconds, to_number
from abrpbridge.mapping.path import NOT_FOUND, JsonValue, ParsedPath, evaluate, parse_path
from abrpbridge.models.telemetry import FIELD_KINDS, TIMESTAMP_FIELD, FieldKind, Telemetry

_logger = logging.getLogger(__name__)

MappingSpec: TypeAlias = Mapping[str, tuple[ParsedPath, ...]]

_COERCERS: dict[FieldKind, Callable[[Any], Any]] = {
    FieldKind.NUMBER: to_number,
    FieldKind.BOOLEAN: to_bool,
    FieldKind.TIMESTAMP: to_epoch_seconds,
}


def load_mapping(raw: Mapping[str, Any]) -> MappingSpec:
    """Validate a raw ``{field: [path, ...]}`` document and pre-parse its paths.

    A single string is accepted in place of a one-element list.

    Raises
    ------
    MappingError
        Unknown field name, wrong value type, or malformed path.
    """
    parsed: dict[str, tuple[ParsedPath, ...]] = {}
    for field, paths in raw.items():
        if field not in FIELD_KINDS:
            raise MappingError(f"Unknown telemetry field in mapping: {field!r}")
        if isinstance(paths, str):
            paths = [paths]
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise MappingError(f"Mapping for {field!r} must be a list of path strings")
        parsed[field] = tuple(parse_path(p) for p in paths)
    return MappingProxyType(parsed)


def pick_first(document: JsonValue, paths: tuple[ParsedPath, ...]) -> JsonValue:
    """First value that is neither missing nor ``null``, in fallback order."""
    for path in paths:
        value = evaluate(document, path)
        if value is not NOT_FOUND and value is not None:
            return value
    return NOT_FOUND


def extract_telemetry(
    document: JsonValue,
    mapping: MappingSpec,
    *,
    now: Callable[[], float] = time.time,
) -> Telemetry:
    """Map *document* onto a partial :class:`Telemetry` record.

    Fields without a mapping, without a match or with an uncoercible value
    are left unset. ``utc`` falls back to the current time.
    """
    fields: dict[str, Any] = {}
    for field, paths in mapping.items():
        raw = pick_first(document, paths)
        if raw is NOT_FOUND:
            continue
        coerced = _COERCERS[FIELD_KINDS[field]](raw)
        if coerced is None:
            _logger.debug("Dropping uncoercible value for %s: %r", field, raw)
            continue
        fields[field] = coerced

    if TIMESTAMP_FIELD not in fields:
        fields[TIMESTAMP_FIELD] = int(now())
    return Telemetry(**fields)
