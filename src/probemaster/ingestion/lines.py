"""Line normalization.

Turns one raw transport line into a ``(device_id, payload)`` pair. The
wire has changed shape over time, so each historical encoding is a
separate :class:`LineDialect`, tried in priority order. Normalization never
discards a line: when no dialect matches, the device id degrades to a
best-effort guess and the whole line becomes the payload.
"""

from __future__ import annotations

import dataclasses
import logging
import re

from probemaster._constants import PROBE_ID_LENGTH, SENTINEL_DEVICE_ID
from probemaster.ingestion.normalize import strip_routing_tags

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class NormalizedLine:
    device_id: str
    payload: str
    raw: str
    dialect: str


@dataclasses.dataclass(frozen=True)
class LineDialect:
    """A single ``<id><separator><payload>`` encoding."""

    name: str
    pattern: re.Pattern[str]

    def match(self, line: str) -> tuple[str, str] | None:
        found = self.pattern.match(line)
        if found is None:
            return None
        return found.group(1).upper(), found.group(2).strip()


SPACE_DIALECT = LineDialect("space", re.compile(rf"^([A-Za-z0-9]{{{PROBE_ID_LENGTH}}})\s+(.+)$", re.DOTALL))
COLON_DIALECT = LineDialect("colon", re.compile(rf"^([A-Za-z0-9]{{{PROBE_ID_LENGTH}}}):\s*(.+)$", re.DOTALL))

#: Priority order: the current space-separated format first, legacy colon second.
LINE_DIALECTS: tuple[LineDialect, ...] = (SPACE_DIALECT, COLON_DIALECT)


def fallback_device_id(message_id: str | None) -> str:
    if message_id:
        return message_id[:PROBE_ID_LENGTH].upper()
    return SENTINEL_DEVICE_ID


def normalize_line(raw: str, *, message_id: str | None = None) -> NormalizedLine | None:
    """Split ``raw`` into device id and payload.

    Returns ``None`` only for blank input.
    """
    text = strip_routing_tags(raw)
    if not text:
        return None

    for dialect in LINE_DIALECTS:
        matched = dialect.match(text)
        if matched is not None:
            device_id, payload = matched
            return NormalizedLine(device_id=device_id, payload=payload, raw=raw, dialect=dialect.name)

    device_id = fallback_device_id(message_id)
    _logger.debug("No device id in line %r; using %s", raw, device_id)
    return NormalizedLine(device_id=device_id, payload=text, raw=raw, dialect="fallback")
