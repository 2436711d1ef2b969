"""CSV export of the reading log."""

from __future__ import annotations

import csv
import io
import math
from collections.abc import Iterable

from probemaster.models.reading import Reading

CSV_HEADER = ("timestamp", "isoTime", "probeId", "CO2", "Temp", "Hum", "Sound")


def _cell(value: float) -> str:
    return "" if math.isnan(value) else repr(value)


def readings_to_csv(readings: Iterable[Reading]) -> str:
    """One row per reading; absent metrics are empty cells, never ``0``."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for reading in readings:
        writer.writerow(
            (
                int(reading.timestamp.timestamp() * 1000),
                reading.timestamp.isoformat(),
                reading.probe_id,
                _cell(reading.co2),
                _cell(reading.temp),
                _cell(reading.hum),
                _cell(reading.sound),
            )
        )
    return buffer.getvalue()
