"""Data models for probe telemetry and device announcements."""

from probemaster.models._base import Metric, ProbeMasterModel
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
from probemaster.models.poll import PollBatch, PollMessage
from probemaster.models.reading import Reading
from probemaster.models.topology import Location, Probe, location_id

__all__ = [
    "Announcement",
    "AnnouncementKind",
    "AreaAnnouncement",
    "BaselineFlag",
    "Location",
    "Metric",
    "PixelCount",
    "PollBatch",
    "PollMessage",
    "Probe",
    "ProbeAssignment",
    "ProbeMasterModel",
    "Reading",
    "StatInfo",
    "ThresholdInfo",
    "UNKNOWN_ANNOUNCEMENT",
    "location_id",
]
