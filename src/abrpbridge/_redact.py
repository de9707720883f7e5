"""Helpers for safe debug logging.

The bridge handles OAuth tokens, device codes and ABRP keys. Everything that
ends up in a log record passes through :func:`redact_for_log` (documents) or
:func:`redact_url` (URLs carrying a token in the query string).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "***"

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "access",
        "refresh",
        "id",
        "token",
        "accesstoken",
        "refreshtoken",
        "idtoken",
        "devicecode",
        "authorization",
        "apikey",
        "usertoken",
        "password",
        "clientsecret",
    }
)


def _is_sensitive(key: str) -> bool:
    return key.replace("_", "").replace("-", "").lower() in _SENSITIVE_KEYS


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a copy of *value* with secrets masked and long strings truncated."""
    if _depth > 20:
        return "<max-depth>"

    if isinstance(value, Mapping):
        return {
            str(key): REDACTED
            if _is_sensitive(str(key))
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }

    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    if value is None or isinstance(value, (int, float, bool)):
        return value

    return repr(value)


def redact_url(url: str) -> str:
    """Mask sensitive query parameters (e.g. ``?token=``) in *url*."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [(key, REDACTED if _is_sensitive(key) else val) for key, val in parse_qsl(parts.query)]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))
