"""Trace recording - capture user interactions as replayable traces.

This module provides:
- Robust selectors (stable attributes first, structural paths last)
- Debounced capture of clicks, typing, keys and scrolling
- Trace assembly, validation and export
"""

from .assembler import TraceAssembler, merge_consecutive_types
from .capture import CaptureEngine, CaptureOptions, CaptureState, RecordingIndicator
from .export import TraceExporter
from .models import (
    ClickStep,
    KeyStep,
    NavigateStep,
    Offset,
    ScrollStep,
    Step,
    StepType,
    Trace,
    TraceMeta,
    TypeStep,
    Viewport,
    WaitVisibleStep,
)
from .selectors import Fingerprint, SelectorBuilder
from .validator import is_valid_trace, load_trace, parse_trace, validate_trace

__all__ = [
    # Models
    "StepType",
    "Step",
    "NavigateStep",
    "ClickStep",
    "TypeStep",
    "KeyStep",
    "ScrollStep",
    "WaitVisibleStep",
    "Offset",
    "Viewport",
    "TraceMeta",
    "Trace",
    # Selectors
    "SelectorBuilder",
    "Fingerprint",
    # Capture
    "CaptureEngine",
    "CaptureOptions",
    "CaptureState",
    "RecordingIndicator",
    # Assembly and validation
    "TraceAssembler",
    "merge_consecutive_types",
    "validate_trace",
    "is_valid_trace",
    "parse_trace",
    "load_trace",
    "TraceExporter",
]
