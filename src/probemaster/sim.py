"""Simulated device output.

Produces the same lines the device prints, so a dashboard or test can run
the full pipeline without hardware or a server. While simulated mode is on
the poll loops stay stopped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable, Sequence

from probemaster.models._base import Metric

_logger = logging.getLogger(__name__)

ROUTING_PREFIX = "[UART1] WEBd:"

TEST_PROBE_IDS: tuple[str, ...] = (
    "a1b2",
    "c3d4",
    "e5f6",
    "g7h8",
    "i9j0",
    "k1l2",
    "m3n4",
    "o5p6",
    "q7r8",
)

#: ``(area, location, probe id)`` as reported by ``GET AREAS``.
TEST_AREAS: tuple[tuple[str, str, str], ...] = (
    ("FLOOR11", "ROTUNDA", "a1b2"),
    ("FLOOR11", "LOBBY", "c3d4"),
    ("FLOOR12", "ROTUNDA", "e5f6"),
    ("FLOOR12", "OFFICE", "g7h8"),
    ("FLOOR15", "ROTUNDA", "i9j0"),
    ("FLOOR16", "ROTUNDA", "k1l2"),
    ("FLOOR17", "ROTUNDA", "m3n4"),
    ("POOL", "ENTRY", "o5p6"),
    ("TEAROOM", "ENTRANCE", "q7r8"),
)

# (min, max, min_o, max_o) ranges per metric.
_STAT_RANGES: dict[Metric, tuple[tuple[float, float], ...]] = {
    Metric.CO2: ((400, 600), (700, 1000), (350, 450), (950, 1100)),
    Metric.TEMP: ((20, 22), (23, 25), (19, 21), (25, 27)),
    Metric.HUM: ((40, 45), (55, 60), (35, 40), (60, 65)),
    Metric.SOUND: ((30, 40), (60, 70), (25, 35), (70, 80)),
}

_THRESHOLD_BASE: dict[Metric, float] = {
    Metric.CO2: 500,
    Metric.TEMP: 22,
    Metric.HUM: 50,
    Metric.SOUND: 50,
}


def sample_line(probe_id: str, rng: random.Random | None = None) -> str:
    """One reading line in the legacy colon format with loose tokens."""
    rng = rng or random.Random()
    co2 = round(rng.uniform(400, 1000))
    temp = rng.uniform(20, 25)
    hum = round(rng.uniform(40, 60))
    sound = round(rng.uniform(30, 70))
    return f"{probe_id}: co2:{co2} temp:{temp:.1f} hum:{hum} sound:{sound}"


def area_response_lines() -> list[str]:
    return [f"{ROUTING_PREFIX} AREA: {area} {location} {probe_id}" for area, location, probe_id in TEST_AREAS]


def stat_response_line(area: str, metric: str, rng: random.Random | None = None) -> str:
    """``STAT:`` line; an unknown metric reports ``-1`` for every field."""
    rng = rng or random.Random()
    canonical = Metric.canonicalize(metric)
    if canonical is None:
        values = [-1.0] * 4
        token = metric.upper()
    else:
        values = [rng.uniform(low, high) for low, high in _STAT_RANGES[canonical]]
        if canonical is not Metric.TEMP:
            values = [float(round(v)) for v in values]
        token = canonical.wire_token
    low, high, low_o, high_o = values
    return f"{ROUTING_PREFIX} STAT: {area} {token} min:{low:.2f} max:{high:.2f} min_o:{low_o:.2f} max_o:{high_o:.2f}"


def threshold_response_line(area: str, metric: str) -> str:
    """``THRESHOLD`` line with six values ramping from half the base value."""
    canonical = Metric.canonicalize(metric)
    base = _THRESHOLD_BASE[canonical] if canonical is not None else 0.0
    token = canonical.wire_token if canonical is not None else metric.upper()
    values = " ".join(f"{base * (0.5 + i * 0.15):.2f}" for i in range(6))
    return f"{ROUTING_PREFIX} THRESHOLD {area} {token} {values}"


class SimulatedFeed:
    """Emits one sample line per probe every ``interval`` seconds.

    Parameters
    ----------
    on_line : callable
        ``await on_line(line)`` for each generated line.
    probe_ids : sequence of str
        Probes to simulate.
    interval : float
        Seconds between ticks.
    rng : random.Random, optional
        Seeded generator for reproducible output.
    """

    def __init__(
        self,
        on_line: Callable[[str], Awaitable[None]],
        *,
        probe_ids: Sequence[str] = TEST_PROBE_IDS,
        interval: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        self._on_line = on_line
        self._probe_ids = tuple(probe_ids)
        self._interval = interval
        self._rng = rng or random.Random()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> list[str]:
        lines = [sample_line(probe_id, self._rng) for probe_id in self._probe_ids]
        for line in lines:
            await self._on_line(line)
        return lines

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="probemaster-sim")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                _logger.exception("Simulated tick failed")
            await asyncio.sleep(self._interval)
