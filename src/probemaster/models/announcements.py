"""Structured announcement records.

Announcements are device or server responses describing area topology,
statistics, thresholds, baseline flags, occupancy pixels and probe
assignments. The ``-1`` wire sentinel is stored verbatim; use the
``effective_*`` / ``override_*`` accessors where "explicitly unset" must be
told apart from a real value.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Any

from pydantic import field_validator

from probemaster._constants import THRESHOLD_SLOTS, UNSET
from probemaster.ingestion.normalize import canonical_area, canonical_probe_id, clamp_pixel, safe_float
from probemaster.models._base import Metric, ProbeMasterModel


def _unset_to_none(value: float) -> float | None:
    return None if value == UNSET else value


class AnnouncementKind(enum.StrEnum):
    AREA = "area"
    STAT = "stat"
    THRESHOLD = "threshold"
    USE_BASELINE = "use_baseline"
    PIXELS = "pixels"
    PROBE_ASSIGNMENT = "probe_assignment"
    UNKNOWN = "unknown"


class _AreaScoped(ProbeMasterModel):
    area: str

    @field_validator("area", mode="before")
    @classmethod
    def _canonical_area(cls, value: Any) -> str:
        area = canonical_area(value)
        if not area:
            raise ValueError("area must be non-empty")
        return area


class _MetricScoped(_AreaScoped):
    metric: Metric

    @field_validator("metric", mode="before")
    @classmethod
    def _canonical_metric(cls, value: Any) -> Metric:
        metric = Metric.canonicalize(value)
        if metric is None:
            raise ValueError(f"unknown metric {value!r}")
        return metric


class AreaAnnouncement(_AreaScoped):
    """One ``AREA:`` line.

    Empty ``location`` and ``probe_id`` together mean "this area has no
    probes" and clear the area's location map.
    """

    location: str = ""
    probe_id: str = ""

    @property
    def is_clear(self) -> bool:
        return not self.location and not self.probe_id


class StatInfo(_MetricScoped):
    """Per-area statistic. ``-1`` in any field means "not applicable"."""

    min: float
    max: float
    min_o: float
    max_o: float

    @field_validator("min", "max", "min_o", "max_o", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> float:
        parsed = safe_float(value)
        if parsed is None:
            raise ValueError(f"not a number: {value!r}")
        return parsed

    @property
    def override_min(self) -> float | None:
        return _unset_to_none(self.min_o)

    @property
    def override_max(self) -> float | None:
        return _unset_to_none(self.max_o)


class ThresholdInfo(_MetricScoped):
    """Six pixel thresholds for one area/metric.

    ``values`` always has exactly six entries; short input is padded with
    ``-1`` and long input truncated. ``-1`` means "unset, use the current
    value" and is preserved exactly.
    """

    values: tuple[float, ...]

    @field_validator("values", mode="before")
    @classmethod
    def _six_values(cls, value: Any) -> tuple[float, ...]:
        items = list(value or [])[:THRESHOLD_SLOTS]
        parsed = [safe_float(v) for v in items]
        normalized = [UNSET if v is None else v for v in parsed]
        normalized.extend([UNSET] * (THRESHOLD_SLOTS - len(normalized)))
        return tuple(normalized)

    @property
    def effective_values(self) -> list[float | None]:
        return [_unset_to_none(v) for v in self.values]


class BaselineFlag(_AreaScoped):
    enabled: bool


class PixelCount(_AreaScoped):
    """Derived occupancy indicator, clamped and rounded into 0..6."""

    value: int

    @field_validator("value", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        parsed = safe_float(str(value).replace("*", "") if isinstance(value, str) else value)
        if parsed is None:
            raise ValueError(f"not a pixel count: {value!r}")
        return clamp_pixel(parsed)


class ProbeAssignment(_AreaScoped):
    """Explicit ``PROBE <id> <area> <location> ACCEPTED`` acknowledgement."""

    probe_id: str
    location: str

    @field_validator("probe_id", mode="before")
    @classmethod
    def _canonical_probe(cls, value: Any) -> str:
        probe_id = canonical_probe_id(value)
        if probe_id is None:
            raise ValueError(f"invalid probe id {value!r}")
        return probe_id


@dataclasses.dataclass(frozen=True)
class Announcement:
    """Parser result. ``data`` is ``None`` when the marker matched but the
    body did not parse, and always ``None`` for ``UNKNOWN``.

    ``PIXELS`` carries a list of :class:`PixelCount`, since the LED
    diagnostic line reports every area at once.
    """

    kind: AnnouncementKind
    data: Any = None

    @property
    def is_unknown(self) -> bool:
        return self.kind is AnnouncementKind.UNKNOWN


UNKNOWN_ANNOUNCEMENT = Announcement(AnnouncementKind.UNKNOWN)
