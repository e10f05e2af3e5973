"""Diagnostic artifacts for failed replay steps."""

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import structlog

from ..dom.base import DomDocument

logger = structlog.get_logger()

ERROR_LOG_NAME = "errors.jsonl"


@dataclass
class StepFailure:
    """A step that failed during a best-effort run."""

    index: int
    type: str
    selector: Optional[str]
    message: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    screenshot: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class ArtifactRecorder:
    """Writes an error log line and a screenshot per failing step.

    Files:
        <dir>/errors.jsonl               one JSON record per failure
        <dir>/step-<index>-<type>.png    viewport at the time of failure
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.log = logger.bind(component="artifacts", directory=str(self.directory))

    @property
    def error_log(self) -> Path:
        return self.directory / ERROR_LOG_NAME

    def screenshot_path(self, index: int, step_type: str) -> Path:
        return self.directory / f"step-{index:03d}-{step_type}.png"

    async def record_failure(
        self,
        document: DomDocument,
        index: int,
        step_type: str,
        selector: Optional[str],
        message: str,
    ) -> StepFailure:
        """Persist diagnostics for one failure and return its record."""
        self.directory.mkdir(parents=True, exist_ok=True)
        failure = StepFailure(index=index, type=step_type, selector=selector, message=message)

        path = self.screenshot_path(index, step_type)
        try:
            path.write_bytes(await document.screenshot())
            failure.screenshot = str(path)
        except Exception as e:
            self.log.warning("Failure screenshot not captured", index=index, error=str(e))

        with self.error_log.open("a", encoding="utf-8") as f:
            f.write(json.dumps(failure.to_dict()) + "\n")

        self.log.info("Failure artifacts written", index=index, step_type=step_type)
        return failure
