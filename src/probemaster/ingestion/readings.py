"""Reading payload parsing.

Three payload dialects are in use on the wire:

* key=value CSV, the current probe firmware:
  ``co2=454,temp=25.5,hum=36.2,db=67,rssi=-57``
* bracketed tags, older firmware: ``[CO2] 500 [HUM] 50 [TEMP] 25 [dB] 60``
* loose ``key:value`` / ``key=value`` tokens, as produced by the wire
  translator and the simulator: ``co2:500 temp:25 hum:50 sound:60``

Each dialect is an isolated function returning a partial metric dict; the
first dialect that yields at least one finite metric wins.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from datetime import datetime

from probemaster.ingestion.lines import NormalizedLine, normalize_line
from probemaster.ingestion.normalize import leading_float, metric_value
from probemaster.models.reading import Reading

_logger = logging.getLogger(__name__)

MetricPatch = dict[str, float]

_CSV_KEYS: dict[str, str] = {"co2": "co2", "temp": "temp", "hum": "hum", "db": "sound", "sound": "sound"}
_CSV_RE = re.compile(r"^\s*[A-Za-z0-9_]+\s*=\s*[^,]*(\s*,\s*[A-Za-z0-9_]+\s*=\s*[^,]*)*\s*$")

_TAG_KEYS: dict[str, str] = {"co2": "co2", "hum": "hum", "temp": "temp", "db": "sound"}
_TAG_RE = re.compile(r"\[(CO2|HUM|TEMP|dB)\]\s*(\S+)", re.IGNORECASE)

_LOOSE_TOKEN_RE = re.compile(r"^([^:=]+)[:=](.+)$")
_LOOSE_PREFIXES: tuple[tuple[str, str], ...] = (
    ("co2", "co2"),
    ("temp", "temp"),
    ("hum", "hum"),
    ("sound", "sound"),
)


def _finite_only(patch: MetricPatch) -> MetricPatch:
    return {key: value for key, value in patch.items() if math.isfinite(value)}


def parse_key_value_csv(payload: str) -> MetricPatch:
    """``co2=454,temp=25.5,hum=36.2,db=67[,rssi=...]``; unknown keys are ignored."""
    if _CSV_RE.match(payload) is None:
        return {}
    patch: MetricPatch = {}
    for part in payload.split(","):
        key, _, value = part.partition("=")
        field = _CSV_KEYS.get(key.strip().lower())
        if field is not None:
            patch[field] = metric_value(value.strip())
    return _finite_only(patch)


def parse_bracketed_tags(payload: str) -> MetricPatch:
    """``[CO2] 500 [HUM] 50 [TEMP] 25 [dB] 60`` in any order, any subset."""
    patch: MetricPatch = {}
    for tag, value in _TAG_RE.findall(payload):
        patch[_TAG_KEYS[tag.lower()]] = metric_value(value)
    return _finite_only(patch)


def parse_loose_tokens(payload: str) -> MetricPatch:
    """Whitespace/comma separated ``key:value`` or ``key=value`` tokens.

    Keys are case-insensitive and prefix-matched (``co2ppm``, ``temperature``).
    ``db`` is accepted as an alias of ``sound``.
    """
    patch: MetricPatch = {}
    for token in re.split(r"[\s,]+", payload):
        found = _LOOSE_TOKEN_RE.match(token)
        if found is None:
            continue
        key, value = found.groups()
        parsed = leading_float(value)
        if parsed is None:
            continue
        lowered = key.lower()
        if lowered == "db":
            patch["sound"] = parsed
            continue
        for prefix, field in _LOOSE_PREFIXES:
            if lowered.startswith(prefix):
                patch[field] = parsed
                break
    return _finite_only(patch)


#: Priority order of payload dialects.
READING_DIALECTS: tuple[tuple[str, Callable[[str], MetricPatch]], ...] = (
    ("key_value", parse_key_value_csv),
    ("bracketed", parse_bracketed_tags),
    ("loose", parse_loose_tokens),
)


def parse_metrics(payload: str) -> MetricPatch:
    for name, dialect in READING_DIALECTS:
        patch = dialect(payload)
        if patch:
            _logger.debug("Payload %r matched %s dialect", payload, name)
            return patch
    return {}


def parse_reading(line: NormalizedLine, *, timestamp: datetime | None = None) -> Reading | None:
    """Build a :class:`Reading` from a normalized line, or ``None`` if no metric parses."""
    patch = parse_metrics(line.payload)
    if not patch:
        return None
    kwargs: dict[str, object] = {"probe_id": line.device_id, **patch}
    if timestamp is not None:
        kwargs["timestamp"] = timestamp
    return Reading.model_validate(kwargs)


def parse_reading_line(
    raw: str,
    *,
    message_id: str | None = None,
    timestamp: datetime | None = None,
) -> Reading | None:
    """Normalize then parse ``raw``."""
    normalized = normalize_line(raw, message_id=message_id)
    if normalized is None:
        return None
    return parse_reading(normalized, timestamp=timestamp)
