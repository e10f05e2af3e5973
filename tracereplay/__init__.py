"""Record browser interactions as portable traces and replay them.

Usage:
    from tracereplay import CaptureEngine, ReplayOrchestrator, load_trace

    trace = load_trace("trace.json")
    result = await ReplayOrchestrator(document).run(trace)
"""

from .config import Settings, get_settings
from .exceptions import (
    ElementNotFoundError,
    InvalidSelectorError,
    NavigationError,
    TraceLoadError,
    TraceReplayError,
    TraceValidationError,
)
from .recording import CaptureEngine, SelectorBuilder, Trace, load_trace, parse_trace, validate_trace
from .replay import ElementResolver, FailurePolicy, ReplayOptions, ReplayOrchestrator, ReplayResult

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "TraceReplayError",
    "TraceValidationError",
    "TraceLoadError",
    "ElementNotFoundError",
    "NavigationError",
    "InvalidSelectorError",
    "CaptureEngine",
    "SelectorBuilder",
    "Trace",
    "load_trace",
    "parse_trace",
    "validate_trace",
    "ElementResolver",
    "FailurePolicy",
    "ReplayOptions",
    "ReplayOrchestrator",
    "ReplayResult",
]
