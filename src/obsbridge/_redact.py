"""Helpers for safe debug logging.

Commands relayed to OBS can carry stream keys and passwords, webhook requests
carry bearer tokens, and screenshots come back as multi-megabyte base64 data
URIs. :func:`redact_for_log` masks and shortens such values before they reach
a DEBUG log line.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

# Matched against the key with case, ``_`` and ``-`` removed, so ``streamKey``,
# ``stream_key`` and ``bearer_token`` all hit.
_SENSITIVE_SUFFIXES: tuple[str, ...] = (
    "password",
    "passwd",
    "secret",
    "token",
    "key",
    "authorization",
    "authentication",
    "cookie",
)

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.+-]+)*;base64,")

_MAX_DEPTH = 20


def _is_sensitive(key: str) -> bool:
    normalized = key.replace("_", "").replace("-", "").lower()
    return normalized.endswith(_SENSITIVE_SUFFIXES)


def _shorten(text: str, max_string: int) -> str:
    match = _DATA_URI.match(text)
    if match is not None:
        payload = len(text) - match.end()
        return f"<{match.group('mime') or 'data'} data-uri:{payload}b>"
    if len(text) > max_string:
        return f"{text[:max_string]}…<truncated>"
    return text


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Pydantic models are dumped with their wire (camelCase) keys first. Values
    under secret-looking keys are replaced, screenshot data URIs are reduced
    to their size and other long strings are truncated.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _shorten(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True)

    nested = _depth + 1
    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>"
            if _is_sensitive(str(k))
            else redact_for_log(v, max_string=max_string, _depth=nested)
            for k, v in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=nested) for v in value]

    return repr(value)
