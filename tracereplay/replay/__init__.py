"""Trace replay: element resolution, orchestration and the standalone driver."""

from .artifacts import ArtifactRecorder, StepFailure
from .orchestrator import (
    FailurePolicy,
    ReplayOptions,
    ReplayOrchestrator,
    ReplayResult,
    ReplayStatus,
)
from .resolver import ElementResolver, Resolution
from .status import StatusChannel, StatusEvent, StatusKind

__all__ = [
    "ArtifactRecorder",
    "ElementResolver",
    "FailurePolicy",
    "ReplayOptions",
    "ReplayOrchestrator",
    "ReplayResult",
    "ReplayStatus",
    "Resolution",
    "StatusChannel",
    "StatusEvent",
    "StatusKind",
    "StepFailure",
]
