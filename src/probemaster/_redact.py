"""Redaction for DEBUG logs.

Every outbound request carries the shared access key, and request headers
are logged at DEBUG. Values under sensitive keys are replaced before they
reach a log record.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

REDACTED = "<redacted>"

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "x_access_key",
        "access_key",
        "accesskey",
        "authorization",
        "cookie",
        "password",
    }
)


def _is_sensitive(key: str) -> bool:
    return key.strip().lower().replace("-", "_") in _SENSITIVE_KEYS


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...<{len(text) - limit} more>"


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Copy of ``value`` with secrets masked and long strings shortened.

    Mappings are walked recursively; a value is masked when its key names a
    secret (``X-Access-Key``, ``access_key``, ``Authorization``...),
    whatever the case or dash/underscore spelling.
    """
    if isinstance(value, Mapping):
        return {
            str(key): REDACTED if _is_sensitive(str(key)) else redact_for_log(item, max_string=max_string)
            for key, item in value.items()
        }
    if isinstance(value, str):
        return _truncate(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, (list, tuple)):
        return [redact_for_log(item, max_string=max_string) for item in value]
    return value
