"""Announcement parsing and encoding.

Device-side responses to commands (``GET AREAS``, ``GET STATS``...) and
server-side translations of the REST endpoints share one line grammar.
A marker may appear anywhere in the line, so routing prefixes such as
``[UART1] WEBd:`` are tolerated; the text from the marker on is handed to
the sub-parser for that kind.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from probemaster._constants import UNSET
from probemaster.ingestion.normalize import format_number, safe_float
from probemaster.models._base import ProbeMasterModel
from probemaster.models.announcements import (
    UNKNOWN_ANNOUNCEMENT,
    Announcement,
    AnnouncementKind,
    AreaAnnouncement,
    BaselineFlag,
    PixelCount,
    ProbeAssignment,
    StatInfo,
    ThresholdInfo,
)

_logger = logging.getLogger(__name__)

_NUMBER = r"[-+]?\d*\.?\d+"

_AREA_RE = re.compile(r"AREA:\s+(\S+)\s+(.+?)\s*$")
_NO_PROBES_RE = re.compile(r"\(\s*no probes\s*\)", re.IGNORECASE)
_STAT_RE = re.compile(
    rf"STAT:\s+(\S+)\s+(\S+)\s+min:({_NUMBER})\s+max:({_NUMBER})\s+min_o:({_NUMBER})\s+max_o:({_NUMBER})\s*$",
    re.IGNORECASE,
)
_THRESHOLDS_RE = re.compile(r"THRESHOLDS\s+(\S+)\s+(\S+)\s+\[(.*?)\]\s*$", re.IGNORECASE)
_THRESHOLD_RE = re.compile(r"THRESHOLD\s+(\S+)\s+(\S+)((?:\s+\S+)*)\s*$", re.IGNORECASE)
_BASELINE_RE = re.compile(r"USE_BASELINE\s+(\S+)\s+(True|False)\s*$", re.IGNORECASE)
_PROBE_RE = re.compile(r"PROBE\s+(\S+)\s+(\S+)\s+(\S+)\s+ACCEPTED", re.IGNORECASE)
_PIXELS_RE = re.compile(r"PIXELS\s+(.+?)\s+(\S+)\s*$")
_LEDS_RE = re.compile(r"\[LEDS\]\s*Pixels:\s*(.+)$", re.IGNORECASE)


def _build(model: type[ProbeMasterModel], **fields: Any) -> Any:
    try:
        return model.model_validate(fields)
    except ValidationError as exc:
        _logger.debug("Rejected %s fields %r: %s", model.__name__, fields, exc.errors())
        return None


def parse_area(text: str) -> AreaAnnouncement | None:
    match = _AREA_RE.match(text)
    if match is None:
        return None
    area, rest = match.groups()
    if _NO_PROBES_RE.fullmatch(rest):
        return _build(AreaAnnouncement, area=area)
    parts = rest.split()
    if len(parts) != 2:
        return None
    return _build(AreaAnnouncement, area=area, location=parts[0], probe_id=parts[1])


def parse_stat(text: str) -> StatInfo | None:
    """All four numeric fields are required; there are no partial stats."""
    match = _STAT_RE.match(text)
    if match is None:
        return None
    area, metric, low, high, low_o, high_o = match.groups()
    return _build(StatInfo, area=area, metric=metric, min=low, max=high, min_o=low_o, max_o=high_o)


def _threshold_value(token: str) -> float:
    parsed = safe_float(token.strip().rstrip("%"))
    return UNSET if parsed is None else parsed


def parse_bracketed_thresholds(text: str) -> ThresholdInfo | None:
    """``THRESHOLDS <area> <metric> [10%, 40%, ...]``."""
    match = _THRESHOLDS_RE.match(text)
    if match is None:
        return None
    area, metric, body = match.groups()
    values = [_threshold_value(token) for token in body.split(",")] if body.strip() else []
    return _build(ThresholdInfo, area=area, metric=metric, values=values)


def parse_spaced_thresholds(text: str) -> ThresholdInfo | None:
    """``THRESHOLD <area> <metric> v1 ... v6`` as the device prints it.

    ``THRESHOLD ... ACCEPTED`` is a per-slot acknowledgement, not a
    threshold listing, and yields ``None``.
    """
    match = _THRESHOLD_RE.match(text)
    if match is None:
        return None
    area, metric, tail = match.groups()
    tokens = tail.split()
    if tokens and tokens[-1].upper() == "ACCEPTED":
        return None
    return _build(ThresholdInfo, area=area, metric=metric, values=[_threshold_value(t) for t in tokens])


def parse_baseline(text: str) -> BaselineFlag | None:
    match = _BASELINE_RE.match(text)
    if match is None:
        return None
    return _build(BaselineFlag, area=match.group(1), enabled=match.group(2).lower() == "true")


def parse_probe_assignment(text: str) -> ProbeAssignment | None:
    match = _PROBE_RE.match(text)
    if match is None:
        return None
    probe_id, area, location = match.groups()
    return _build(ProbeAssignment, probe_id=probe_id, area=area, location=location)


def parse_pixels(text: str) -> list[PixelCount] | None:
    """``PIXELS <area> <value>``; the value may carry a trailing ``*``."""
    match = _PIXELS_RE.match(text)
    if match is None:
        return None
    pixel = _build(PixelCount, area=match.group(1), value=match.group(2))
    return [pixel] if pixel is not None else None


def parse_led_pixels(text: str) -> list[PixelCount] | None:
    """``[LEDS] Pixels: FLOOR11:0, FLOOR12:3, ...``."""
    match = _LEDS_RE.match(text)
    if match is None:
        return None
    counts: list[PixelCount] = []
    for pair in match.group(1).split(","):
        area, sep, value = pair.partition(":")
        if not sep:
            continue
        pixel = _build(PixelCount, area=area.strip(), value=value.strip())
        if pixel is not None:
            counts.append(pixel)
    return counts or None


_Marker = tuple[AnnouncementKind, re.Pattern[str], Callable[[str], Any]]

#: Checked in order; the first marker found anywhere in the line decides the kind.
_MARKERS: tuple[_Marker, ...] = (
    (AnnouncementKind.AREA, re.compile(r"AREA:"), parse_area),
    (AnnouncementKind.STAT, re.compile(r"STAT:"), parse_stat),
    (AnnouncementKind.THRESHOLD, re.compile(r"THRESHOLDS"), parse_bracketed_thresholds),
    (AnnouncementKind.THRESHOLD, re.compile(r"THRESHOLD\b"), parse_spaced_thresholds),
    (AnnouncementKind.USE_BASELINE, re.compile(r"USE_BASELINE"), parse_baseline),
    (AnnouncementKind.PROBE_ASSIGNMENT, re.compile(r"PROBE\s+\S+\s+\S+\s+\S+\s+ACCEPTED", re.IGNORECASE), parse_probe_assignment),
    (AnnouncementKind.PIXELS, re.compile(r"PIXELS\s"), parse_pixels),
    (AnnouncementKind.PIXELS, re.compile(r"\[LEDS\]\s*Pixels:", re.IGNORECASE), parse_led_pixels),
)


def parse_announcement(line: str) -> Announcement:
    """Classify ``line`` and parse its body.

    Returns :data:`UNKNOWN_ANNOUNCEMENT` when no marker is present. A
    recognised marker with a malformed body yields ``data=None`` for that
    kind; the line is still an announcement and not a reading.
    """
    for kind, marker, parser in _MARKERS:
        found = marker.search(line)
        if found is None:
            continue
        data = parser(line[found.start() :].strip())
        if data is None:
            _logger.debug("Malformed %s announcement: %r", kind, line)
        return Announcement(kind, data)
    return UNKNOWN_ANNOUNCEMENT


def format_area_line(announcement: AreaAnnouncement) -> str:
    if announcement.is_clear:
        return f"AREA: {announcement.area} (no probes)"
    return f"AREA: {announcement.area} {announcement.location} {announcement.probe_id}"


def format_stat_line(info: StatInfo) -> str:
    fields = " ".join(
        f"{name}:{format_number(getattr(info, name))}" for name in ("min", "max", "min_o", "max_o")
    )
    return f"STAT: {info.area} {info.metric.wire_token} {fields}"


def format_threshold_line(info: ThresholdInfo, *, bracketed: bool = True) -> str:
    values = [format_number(v) for v in info.values]
    if bracketed:
        return f"THRESHOLDS {info.area} {info.metric.wire_token} [{', '.join(values)}]"
    return f"THRESHOLD {info.area} {info.metric.wire_token} {' '.join(values)}"


def format_pixels_line(pixel: PixelCount) -> str:
    return f"PIXELS {pixel.area} {pixel.value}"
