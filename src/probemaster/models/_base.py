"""Base model and metric enum shared by every probemaster record.

Every record inherits from :class:`ProbeMasterModel` which provides:

* frozen instances, so parsed facts can be shared between the reading log,
  the area graph, and event listeners without defensive copies.
* a ``model_validator(mode="before")`` that strips wire sentinel strings
  (``""``, ``"--"``, ``"NaN"``) so the field default is used instead.

:class:`Metric` is the canonical metric vocabulary. Every map keyed by a
metric uses it, whatever spelling arrived on the wire.
"""

from __future__ import annotations

import enum
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

_SENTINELS = frozenset({"", "--", "NaN", "nan"})

_METRIC_ALIASES: dict[str, str] = {
    "CO2": "CO2",
    "TEMP": "Temp",
    "TEMPERATURE": "Temp",
    "HUM": "Hum",
    "HUMIDITY": "Hum",
    "DB": "Sound",
    "SOUND": "Sound",
}


class Metric(enum.StrEnum):
    """Canonical metric names."""

    CO2 = "CO2"
    TEMP = "Temp"
    HUM = "Hum"
    SOUND = "Sound"

    @classmethod
    def canonicalize(cls, token: Any) -> Metric | None:
        """Map a wire spelling (``TEMP``, ``db``, ``Hum``...) to a member."""
        if isinstance(token, Metric):
            return token
        if token is None:
            return None
        name = _METRIC_ALIASES.get(str(token).strip().upper())
        return cls(name) if name is not None else None

    @property
    def wire_token(self) -> str:
        """Spelling the device side uses in commands and announcements."""
        return "DB" if self is Metric.SOUND else self.value.upper()


class ProbeMasterModel(BaseModel):
    """Base for parsed records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _strip_sentinels(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

