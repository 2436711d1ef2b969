"""Translation from server payloads into the device line grammar.

Poll messages and REST responses are rewritten into the same text lines the
device prints, so everything downstream of :func:`ingest_line` sees a
single format whatever the source.

All functions here are pure; malformed items are skipped, never raised.
"""

from __future__ import annotations

import logging
from typing import Any

from probemaster.ingestion.announcements import (
    format_area_line,
    format_pixels_line,
    format_stat_line,
    format_threshold_line,
    parse_announcement,
)
from probemaster.ingestion.lines import normalize_line
from probemaster.ingestion.normalize import format_number
from probemaster.ingestion.readings import parse_metrics
from probemaster.models.announcements import AreaAnnouncement, PixelCount, StatInfo, ThresholdInfo

_logger = logging.getLogger(__name__)

_TOKEN_ORDER = ("co2", "temp", "hum", "sound")


def convert_poll_data(data: str, message_id: str | None = None) -> str:
    """Rewrite a poll message body into ``"<ID> co2:<v> temp:<v> hum:<v> sound:<v>"``.

    Both the current ``F16R co2=454,temp=25.5,...`` and the legacy
    ``abcd: [CO2] 500 [HUM] 50 ...`` encodings are handled; only finite
    metrics are emitted. Announcements and anything unrecognised pass
    through unchanged.
    """
    if not parse_announcement(data).is_unknown:
        return data
    normalized = normalize_line(data, message_id=message_id)
    if normalized is None:
        return data
    patch = parse_metrics(normalized.payload)
    if not patch:
        return data
    tokens = [f"{key}:{format_number(patch[key])}" for key in _TOKEN_ORDER if key in patch]
    return f"{normalized.device_id} {' '.join(tokens)}"


def _text(item: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if value is not None:
            return str(value).strip()
    return ""


def area_lines(payload: Any) -> list[str]:
    """``/areas``: ``[{area, location, probeID}, ...]`` -> ``AREA:`` lines."""
    if not isinstance(payload, list):
        return []
    lines: list[str] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        area = _text(item, "area")
        if not area:
            continue
        location = _text(item, "location")
        probe_id = _text(item, "probeID", "probeId")
        if bool(location) != bool(probe_id):
            _logger.debug("Skipping half-populated area item %r", item)
            continue
        lines.append(format_area_line(AreaAnnouncement(area=area, location=location, probe_id=probe_id)))
    return lines


def stat_lines(payload: Any) -> list[str]:
    """``/stats``: ``{stats: [{name, metrics: [{name, min, max, min_o, max_o}]}]}``."""
    stats = payload.get("stats") if isinstance(payload, dict) else None
    if not isinstance(stats, list):
        return []
    lines: list[str] = []
    for area_stat in stats:
        if not isinstance(area_stat, dict) or not isinstance(area_stat.get("metrics"), list):
            continue
        for metric in area_stat["metrics"]:
            if not isinstance(metric, dict):
                continue
            try:
                info = StatInfo.model_validate(
                    {
                        "area": area_stat.get("name"),
                        "metric": metric.get("name"),
                        "min": metric.get("min"),
                        "max": metric.get("max"),
                        "min_o": metric.get("min_o"),
                        "max_o": metric.get("max_o"),
                    }
                )
            except ValueError:
                _logger.debug("Skipping malformed stat %r", metric)
                continue
            lines.append(format_stat_line(info))
    return lines


def threshold_lines(area: str, payload: Any) -> list[str]:
    """``/thresholds/<area>``: ``{thresholds: [{metric, values}]}`` -> ``THRESHOLDS`` lines."""
    thresholds = payload.get("thresholds") if isinstance(payload, dict) else None
    if not isinstance(thresholds, list):
        return []
    lines: list[str] = []
    for item in thresholds:
        if not isinstance(item, dict) or not isinstance(item.get("values"), list):
            continue
        try:
            info = ThresholdInfo.model_validate({"area": area, "metric": item.get("metric"), "values": item["values"]})
        except ValueError:
            _logger.debug("Skipping malformed threshold %r", item)
            continue
        lines.append(format_threshold_line(info))
    return lines


def pixel_lines(payload: Any) -> list[str]:
    """``/pixels``: ``{pixelCount: [{area, pixels}]}``; ``pixels`` may be ``"6*"`` or a number."""
    counts = payload.get("pixelCount") if isinstance(payload, dict) else None
    if not isinstance(counts, list):
        return []
    lines: list[str] = []
    for item in counts:
        if not isinstance(item, dict):
            continue
        try:
            pixel = PixelCount.model_validate({"area": item.get("area"), "value": item.get("pixels")})
        except ValueError:
            _logger.debug("Skipping malformed pixel count %r", item)
            continue
        lines.append(format_pixels_line(pixel))
    return lines
