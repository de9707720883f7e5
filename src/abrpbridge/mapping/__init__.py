"""Path-based mapping of provider payloads onto ABRP telemetry."""

from abrpbridge.mapping.engine import MappingSpec, extract_telemetry, load_mapping, pick_first
from abrpbridge.mapping.path import NOT_FOUND, IndexSegment, KeySegment, evaluate, parse_path

__all__ = [
    "NOT_FOUND",
    "IndexSegment",
    "KeySegment",
    "MappingSpec",
    "evaluate",
    "extract_telemetry",
    "load_mapping",
    "parse_path",
    "pick_first",
]
