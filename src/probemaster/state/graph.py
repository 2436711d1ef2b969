"""Area / probe / location graph."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from probemaster.models._base import Metric
from probemaster.models.announcements import StatInfo, ThresholdInfo
from probemaster.models.reading import Reading
from probemaster.models.topology import Location, Probe


class AreaState(BaseModel):
    """Everything known about one area.

    ``locations`` maps location name to probe id. ``use_baseline`` is
    ``None`` until the device reports it.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    locations: dict[str, str] = Field(default_factory=dict)
    thresholds: dict[Metric, ThresholdInfo] = Field(default_factory=dict)
    stats: dict[Metric, StatInfo] = Field(default_factory=dict)
    use_baseline: bool | None = None


class StateGraph(BaseModel):
    """Immutable-by-convention snapshot of the topology.

    Merge functions never mutate a graph in place; they return a new one
    that shares untouched entries with the old.
    """

    model_config = ConfigDict(extra="forbid")

    areas: dict[str, AreaState] = Field(default_factory=dict)
    probes: dict[str, Probe] = Field(default_factory=dict)
    locations: dict[str, Location] = Field(default_factory=dict)

    def copy_graph(self) -> StateGraph:
        """Deep copy for handing out to callers."""
        return self.model_copy(deep=True)

    def area(self, name: str) -> AreaState | None:
        return self.areas.get(name)

    def probe_location(self, probe_id: str) -> tuple[str, str] | None:
        """``(area, location)`` currently holding ``probe_id``, if any."""
        for area in self.areas.values():
            for location, holder in area.locations.items():
                if holder == probe_id:
                    return area.name, location
        return None


class ReconcilerSnapshot(BaseModel):
    """Serializable reconciler state, used by the persistence bridge."""

    model_config = ConfigDict(extra="ignore")

    graph: StateGraph = Field(default_factory=StateGraph)
    readings: list[Reading] = Field(default_factory=list)
    pixels: dict[str, int] = Field(default_factory=dict)
    pixels_updated_at: datetime | None = None
    threshold_freshness: dict[str, datetime] = Field(default_factory=dict)
    stat_freshness: dict[str, datetime] = Field(default_factory=dict)
    areas_last_fetched: datetime | None = None
