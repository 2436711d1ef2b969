"""Probe and location identity models."""

from __future__ import annotations

from pydantic import Field, field_validator

from probemaster.ingestion.normalize import canonical_area, canonical_probe_id
from probemaster.models._base import ProbeMasterModel


class Probe(ProbeMasterModel):
    """A sensor device, identified by its 4-character id.

    Construction fails for malformed ids, so an invalid id can never enter
    the graph through this model.
    """

    id: str
    location_id: str | None = Field(default=None, alias="locationId")

    @field_validator("id", mode="before")
    @classmethod
    def _canonical_id(cls, value: object) -> str:
        probe_id = canonical_probe_id(value)
        if probe_id is None:
            raise ValueError(f"invalid probe id {value!r}")
        return probe_id

    def to_record(self) -> dict[str, object]:
        return {"id": self.id, "locationId": self.location_id}


class Location(ProbeMasterModel):
    """A named position within an area; ``id`` is ``"<area>-<name>"``."""

    id: str
    name: str
    area: str

    @classmethod
    def build(cls, area: str, name: str) -> Location:
        area_name = canonical_area(area)
        return cls(id=location_id(area_name, name), name=name, area=area_name)

    def to_record(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name, "area": self.area}


def location_id(area: str, name: str) -> str:
    return f"{canonical_area(area)}-{name}"
