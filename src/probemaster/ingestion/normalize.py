"""Normalization helpers.

Centralizes defensive number parsing and identity canonicalization so the
parsers and the state layer agree on what a valid probe id, area name, or
metric value looks like.
"""

from __future__ import annotations

import math
import re
from typing import Any

from probemaster._constants import PIXEL_MAX, PIXEL_MIN, PROBE_ID_LENGTH

_PROBE_ID_RE = re.compile(rf"^[A-Za-z0-9]{{{PROBE_ID_LENGTH}}}$")
_ROUTING_TAG_RE = re.compile(r"\[[^\]]*\]\s*")
_FLOOR_RE = re.compile(r"FLOOR\s*(\d+)")

NAN = float("nan")


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def metric_value(value: Any) -> float:
    """Parse a metric, returning NaN (never 0) when it is missing or garbled."""
    parsed = safe_float(value)
    return NAN if parsed is None else parsed


def leading_float(text: str) -> float | None:
    """Parse the numeric prefix of a token, like ``"25.5C"`` -> ``25.5``."""
    match = re.match(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?", text)
    if match is None:
        return None
    return safe_float(match.group(0))


def is_finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def strip_routing_tags(line: str) -> str:
    """Remove bracketed routing tags such as ``[UART2]`` from the start of a line."""
    text = line.strip()
    while text.startswith("["):
        stripped = _ROUTING_TAG_RE.sub("", text, count=1)
        if stripped == text:
            break
        text = stripped.strip()
    return text


def is_valid_probe_id(value: str | None) -> bool:
    return value is not None and _PROBE_ID_RE.match(value) is not None


def canonical_probe_id(value: Any) -> str | None:
    """Return the upper-case 4-character probe id, or ``None`` if malformed.

    Routing tags (``"[UART2] dfe8"``) are stripped first.
    """
    if value is None:
        return None
    text = strip_routing_tags(str(value))
    if not is_valid_probe_id(text):
        return None
    return text.upper()


def canonical_area(value: Any) -> str:
    """Upper-case area token; ``"Floor 11"`` collapses to ``"FLOOR11"``."""
    text = str(value or "").strip().upper()
    match = _FLOOR_RE.fullmatch(text)
    if match is not None:
        return f"FLOOR{match.group(1)}"
    return text


def clamp_pixel(value: float) -> int:
    return max(PIXEL_MIN, min(PIXEL_MAX, math.floor(value + 0.5)))


def format_number(value: float) -> str:
    """Shortest exact text for ``value``; integral values drop the ``.0``."""
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return repr(value)
