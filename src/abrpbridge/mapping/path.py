"""Path expressions over decoded JSON documents.

A path is a ``.``-separated list of segments. A segment is either a bare
key (``vehicle``), or a bracketed part directly following a key or another
bracket: ``[0]`` indexes an array, anything else inside the brackets is a
literal object key. Literal keys may contain dots, which is how providers
that use dotted metric names are addressed::

    data[vehicle.drivetrain.electricEngine.charging.level].value
    positions[0].lat

Evaluation never raises: a type mismatch, a ``null`` container or an index
out of range yields :data:`NOT_FOUND`.
"""

from __future__ import annotations

import enum
import functools
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, TypeAlias

from abrpbridge.exceptions import MappingError

# Decoded JSON: None | bool | int | float | str | list[JsonValue] | dict[str, JsonValue]
JsonValue: TypeAlias = Any


class _Missing(enum.Enum):
    NOT_FOUND = "NOT_FOUND"

    def __repr__(self) -> str:
        return self.value

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = _Missing.NOT_FOUND


@dataclass(frozen=True, slots=True)
class KeySegment:
    key: str


@dataclass(frozen=True, slots=True)
class IndexSegment:
    index: int


Segment: TypeAlias = KeySegment | IndexSegment
ParsedPath: TypeAlias = tuple[Segment, ...]


def _bracket_segment(content: str, expression: str) -> Segment:
    if not content:
        raise MappingError(f"Empty brackets in path {expression!r}")
    if content.isascii() and content.isdigit():
        return IndexSegment(int(content))
    return KeySegment(content)


@functools.lru_cache(maxsize=1024)
def parse_path(expression: str) -> ParsedPath:
    """Split *expression* into segments.

    Raises
    ------
    MappingError
        On empty segments, stray or unbalanced brackets.
    """
    segments: list[Segment] = []
    buffer: list[str] = []
    after_bracket = False
    length = len(expression)
    i = 0

    while i < length:
        char = expression[i]

        if char == ".":
            if buffer:
                segments.append(KeySegment("".join(buffer)))
                buffer.clear()
            elif not after_bracket:
                raise MappingError(f"Empty segment in path {expression!r}")
            after_bracket = False
            i += 1
            if i == length:
                raise MappingError(f"Trailing '.' in path {expression!r}")
            continue

        if char == "[":
            if buffer:
                segments.append(KeySegment("".join(buffer)))
                buffer.clear()
            depth = 1
            j = i + 1
            while j < length and depth:
                if expression[j] == "[":
                    depth += 1
                elif expression[j] == "]":
                    depth -= 1
                j += 1
            if depth:
                raise MappingError(f"Unbalanced '[' in path {expression!r}")
            segments.append(_bracket_segment(expression[i + 1 : j - 1], expression))
            after_bracket = True
            i = j
            continue

        if char == "]":
            raise MappingError(f"Unbalanced ']' in path {expression!r}")
        if after_bracket:
            raise MappingError(f"Expected '.' or '[' after ']' in path {expression!r}")
        buffer.append(char)
        i += 1

    if buffer:
        segments.append(KeySegment("".join(buffer)))
    if not segments:
        raise MappingError("Path expression is empty")
    return tuple(segments)


def _step(current: JsonValue, segment: Segment) -> JsonValue:
    if isinstance(segment, KeySegment):
        if isinstance(current, Mapping) and segment.key in current:
            return current[segment.key]
        return NOT_FOUND
    if isinstance(current, list) and 0 <= segment.index < len(current):
        return current[segment.index]
    return NOT_FOUND


def evaluate(document: JsonValue, path: str | ParsedPath) -> JsonValue:
    """Resolve *path* against *document*.

    Returns the nested value (which may itself be ``None`` for a JSON
    ``null`` leaf) or :data:`NOT_FOUND`.
    """
    segments = parse_path(path) if isinstance(path, str) else path
    current = document
    for segment in segments:
        current = _step(current, segment)
        if current is NOT_FOUND:
            return NOT_FOUND
    return current
