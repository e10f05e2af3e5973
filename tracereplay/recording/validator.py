"""Trace validation.

Structural checks run before any replay starts; the first failing check
wins and nothing is executed on a rejected trace.
"""

import json
from pathlib import Path
from typing import Any, Union

import structlog
from pydantic import ValidationError

from ..config import SUPPORTED_TRACE_VERSION
from ..exceptions import TraceLoadError, TraceValidationError
from .models import STEP_TYPES, Trace

logger = structlog.get_logger()


def validate_trace(value: Any) -> None:
    """Raise TraceValidationError if ``value`` is not a replayable trace."""
    if not isinstance(value, dict):
        raise TraceValidationError("Invalid trace: not an object")

    version = value.get("version")
    if isinstance(version, bool) or version != SUPPORTED_TRACE_VERSION:
        raise TraceValidationError(
            f"Unsupported trace version: {version!r}. Expected version {SUPPORTED_TRACE_VERSION}."
        )

    steps = value.get("steps")
    if not isinstance(steps, list):
        raise TraceValidationError("Invalid trace: steps must be an array")
    if not steps:
        raise TraceValidationError("Invalid trace: no steps found")

    for i, step in enumerate(steps, start=1):
        step_type = step.get("type") if isinstance(step, dict) else None
        if step_type not in STEP_TYPES:
            raise TraceValidationError(f"Invalid step {i}: unknown type {step_type!r}")
        ts = step.get("ts")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)) or ts < 0:
            raise TraceValidationError(f"Invalid step {i}: invalid timestamp")

    if not any(step.get("type") == "navigate" for step in steps):
        logger.warning("Trace has no navigate step", steps=len(steps))


def is_valid_trace(value: Any) -> bool:
    try:
        validate_trace(value)
    except TraceValidationError:
        return False
    return True


def parse_trace(value: Any) -> Trace:
    """Validate and build a Trace model."""
    validate_trace(value)
    try:
        return Trace.model_validate(value)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise TraceValidationError(f"Invalid trace: {errors}") from e


def load_trace(path: Union[str, Path]) -> Trace:
    """Read, validate and parse a trace file."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise TraceLoadError(f"Trace file not found: {path}") from e
    except OSError as e:
        raise TraceLoadError(f"Could not read trace file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise TraceLoadError(f"Trace file {path} is not valid UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TraceLoadError(f"Trace file {path} is not valid JSON: {e}") from e

    trace = parse_trace(data)
    logger.info("Trace loaded", path=str(path), steps=trace.step_count)
    return trace
