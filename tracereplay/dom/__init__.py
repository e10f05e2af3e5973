"""DOM access layer shared by capture and replay.

Usage:
    from tracereplay.dom import SnapshotDocument

    document = SnapshotDocument("<button id='save'>Save</button>")
    button = await document.query_selector("#save")
"""

from .base import Box, CaptureEvent, DomDocument, DomElement, EventKind, Listener
from .snapshot import SnapshotAction, SnapshotDocument, SnapshotElement

__all__ = [
    "Box",
    "CaptureEvent",
    "DomDocument",
    "DomElement",
    "EventKind",
    "Listener",
    "SnapshotAction",
    "SnapshotDocument",
    "SnapshotElement",
]
