"""Sensor reading model."""

from __future__ import annotations

import math
from datetime import UTC, datetime

from pydantic import Field, field_validator

from probemaster.models._base import Metric, ProbeMasterModel

NAN = float("nan")


class Reading(ProbeMasterModel):
    """One timestamped multi-metric sample from a probe.

    Any metric may be NaN (absent or unparsable). NaN values are never
    treated as zero and are excluded from :meth:`metrics`.

    Parameters
    ----------
    timestamp : datetime
        Wall-clock time the line was ingested (UTC).
    probe_id : str
        Device id as normalized from the line. The reconciler decides
        whether it is a valid probe identity.
    co2, temp, hum, sound : float
        Metric values, NaN when absent.
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    probe_id: str
    co2: float = NAN
    temp: float = NAN
    hum: float = NAN
    sound: float = NAN

    @field_validator("timestamp")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def is_valid(self) -> bool:
        """A reading is valid only if at least one metric is finite."""
        return any(math.isfinite(v) for v in (self.co2, self.temp, self.hum, self.sound))

    def metrics(self) -> dict[Metric, float]:
        """Finite metric values keyed by canonical metric."""
        values = {
            Metric.CO2: self.co2,
            Metric.TEMP: self.temp,
            Metric.HUM: self.hum,
            Metric.SOUND: self.sound,
        }
        return {metric: value for metric, value in values.items() if math.isfinite(value)}

    @classmethod
    def from_record(cls, record: dict[str, object]) -> Reading:
        """Inverse of :meth:`to_record`."""
        ts = record.get("ts")
        if not isinstance(ts, (int, float)):
            raise ValueError(f"sample record without timestamp: {record!r}")
        return cls.model_validate(
            {
                "timestamp": datetime.fromtimestamp(ts / 1000, UTC),
                "probe_id": record.get("probeId"),
                "co2": record.get("co2"),
                "temp": record.get("temp"),
                "hum": record.get("hum"),
                "sound": record.get("sound"),
            }
        )

    def to_record(self) -> dict[str, object]:
        """Flat dict used for the ``samples`` store and CSV export."""
        return {
            "ts": int(self.timestamp.timestamp() * 1000),
            "probeId": self.probe_id,
            "co2": self.co2,
            "temp": self.temp,
            "hum": self.hum,
            "sound": self.sound,
        }
