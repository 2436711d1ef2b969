"""Pure merge functions.

Each function takes the current :class:`StateGraph` and one parsed fact
and returns the updated graph. Inputs are never mutated: changed
containers are copied, untouched entries are shared. When a fact changes
nothing the input graph itself is returned.
"""

from __future__ import annotations

import logging

from probemaster.ingestion.normalize import canonical_area, canonical_probe_id
from probemaster.models.announcements import (
    AreaAnnouncement,
    BaselineFlag,
    ProbeAssignment,
    StatInfo,
    ThresholdInfo,
)
from probemaster.models.reading import Reading
from probemaster.models.topology import Location, Probe
from probemaster.state.graph import AreaState, StateGraph

_logger = logging.getLogger(__name__)


def _with_area(graph: StateGraph, area: AreaState) -> StateGraph:
    return graph.model_copy(update={"areas": {**graph.areas, area.name: area}})


def _area_or_new(graph: StateGraph, name: str) -> AreaState:
    existing = graph.areas.get(name)
    return existing if existing is not None else AreaState(name=name)


def apply_reading_to_graph(graph: StateGraph, reading: Reading) -> StateGraph:
    """Register the reading's probe with ``location_id=None`` if it is new and valid."""
    probe_id = canonical_probe_id(reading.probe_id)
    if probe_id is None:
        _logger.debug("Reading from invalid probe id %r not registered", reading.probe_id)
        return graph
    if probe_id in graph.probes:
        return graph
    probe = Probe(id=probe_id)
    return graph.model_copy(update={"probes": {**graph.probes, probe_id: probe}})


def apply_area(graph: StateGraph, announcement: AreaAnnouncement) -> StateGraph:
    """Merge one ``AREA:`` line.

    The "(no probes)" form empties that area's location map and nothing
    else. A pair with an invalid probe id is dropped whole; the area entry
    is still created. A valid pair also registers its Location and points
    the Probe at it, so the last topology line or reassignment wins.
    """
    area = _area_or_new(graph, canonical_area(announcement.area))
    known = area.name in graph.areas
    if announcement.is_clear:
        if known and not area.locations:
            return graph
        return _with_area(graph, area.model_copy(update={"locations": {}}))

    probe_id = canonical_probe_id(announcement.probe_id)
    if probe_id is None or not announcement.location:
        _logger.debug("Dropping area entry %r: invalid probe id or location", announcement)
        return graph if known else _with_area(graph, area)

    location = Location.build(area.name, announcement.location)
    probe = graph.probes.get(probe_id)
    in_place = (
        known
        and area.locations.get(location.name) == probe_id
        and location.id in graph.locations
        and probe is not None
        and probe.location_id == location.id
    )
    if in_place:
        return graph

    locations = {**area.locations, location.name: probe_id}
    update: dict[str, object] = {
        "areas": {**graph.areas, area.name: area.model_copy(update={"locations": locations})},
    }
    if location.id not in graph.locations:
        update["locations"] = {**graph.locations, location.id: location}
    if probe is None or probe.location_id != location.id:
        update["probes"] = {**graph.probes, probe_id: Probe(id=probe_id, location_id=location.id)}
    return graph.model_copy(update=update)


def apply_threshold(graph: StateGraph, info: ThresholdInfo) -> StateGraph:
    area = _area_or_new(graph, info.area)
    thresholds = {**area.thresholds, info.metric: info}
    return _with_area(graph, area.model_copy(update={"thresholds": thresholds}))


def apply_stat(graph: StateGraph, info: StatInfo) -> StateGraph:
    area = _area_or_new(graph, info.area)
    stats = {**area.stats, info.metric: info}
    return _with_area(graph, area.model_copy(update={"stats": stats}))


def apply_baseline(graph: StateGraph, flag: BaselineFlag) -> StateGraph:
    area = _area_or_new(graph, flag.area)
    return _with_area(graph, area.model_copy(update={"use_baseline": flag.enabled}))


def reassign_probe(graph: StateGraph, assignment: ProbeAssignment) -> StateGraph:
    """Move a probe to a new area/location after an explicit acknowledgement.

    The probe is removed from every location map it appears in, inserted
    under the new area and location, and its ``location_id`` updated. The
    Location entity is created when missing.
    """
    probe_id = assignment.probe_id
    areas: dict[str, AreaState] = {}
    for name, area in graph.areas.items():
        if probe_id in area.locations.values():
            kept = {loc: holder for loc, holder in area.locations.items() if holder != probe_id}
            area = area.model_copy(update={"locations": kept})
        areas[name] = area

    target = areas.get(assignment.area) or AreaState(name=assignment.area)
    areas[assignment.area] = target.model_copy(
        update={"locations": {**target.locations, assignment.location: probe_id}}
    )

    location = Location.build(assignment.area, assignment.location)
    locations = graph.locations
    if location.id not in locations:
        locations = {**locations, location.id: location}

    probe = Probe(id=probe_id, location_id=location.id)
    return graph.model_copy(
        update={
            "areas": areas,
            "probes": {**graph.probes, probe_id: probe},
            "locations": locations,
        }
    )
