"""probemaster - Async ingestion and state reconciliation for environmental probe telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("probemaster")
except PackageNotFoundError:
    __version__ = "0+local"
from probemaster.client import ProbeMasterClient
from probemaster.config import ProbeMasterConfig
from probemaster.exceptions import (
    ProbeMasterAuthorizationError,
    ProbeMasterConfigError,
    ProbeMasterError,
    ProbeMasterPersistenceError,
    ProbeMasterStreamBusyError,
    ProbeMasterTransportError,
)
from probemaster.models import (
    Announcement,
    AnnouncementKind,
    AreaAnnouncement,
    BaselineFlag,
    Location,
    Metric,
    PixelCount,
    Probe,
    ProbeAssignment,
    Reading,
    StatInfo,
    ThresholdInfo,
)
from probemaster.state.events import StateEvents
from probemaster.state.graph import AreaState, StateGraph
from probemaster.state.store import StateReconciler

__all__ = [
    "__version__",
    "Announcement",
    "AnnouncementKind",
    "AreaAnnouncement",
    "AreaState",
    "BaselineFlag",
    "Location",
    "Metric",
    "PixelCount",
    "Probe",
    "ProbeAssignment",
    "ProbeMasterAuthorizationError",
    "ProbeMasterClient",
    "ProbeMasterConfig",
    "ProbeMasterConfigError",
    "ProbeMasterError",
    "ProbeMasterPersistenceError",
    "ProbeMasterStreamBusyError",
    "ProbeMasterTransportError",
    "Reading",
    "StatInfo",
    "StateEvents",
    "StateGraph",
    "StateReconciler",
    "ThresholdInfo",
]
