"""Trace export to disk."""

import time
from collections.abc import Callable
from pathlib import Path

import structlog

from .models import Trace

logger = structlog.get_logger()


class TraceExporter:
    """Writes traces as ``trace-<epoch-ms>.json`` files."""

    def __init__(self, directory: Path, clock: Callable[[], float] = time.time):
        self.directory = Path(directory)
        self.clock = clock
        self.log = logger.bind(component="trace_exporter")

    def filename(self) -> str:
        return f"trace-{int(self.clock() * 1000)}.json"

    def export(self, trace: Trace) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / self.filename()
        path.write_text(trace.to_json(indent=2), encoding="utf-8")
        self.log.info("Trace exported", path=str(path), steps=trace.step_count)
        return path
