"""Trace assembly: turns the raw captured step stream into a Trace."""

import re
from collections.abc import Iterable
from typing import Optional

import structlog

from .models import ClickStep, Offset, Step, Trace, TraceMeta, TypeStep

logger = structlog.get_logger()

RECORDER_UI_SELECTOR = re.compile(r"\[data-recorder-ui\]|#rec-stop")


def is_recorder_ui_step(step: Step) -> bool:
    selector = getattr(step, "selector", None) or ""
    return bool(RECORDER_UI_SELECTOR.search(selector))


def merge_consecutive_types(steps: Iterable[Step], max_gap_s: float = 1.0) -> list[Step]:
    """Collapse runs of typing into the same selector.

    A type step is folded into the previous one when both target the same
    selector and it started no more than ``max_gap_s`` after the previous
    (merged) step. The merged step keeps the earlier timestamp.
    """
    result: list[Step] = []
    for step in steps:
        last = result[-1] if result else None
        if (
            isinstance(step, TypeStep)
            and isinstance(last, TypeStep)
            and last.selector == step.selector
            and step.ts - last.ts <= max_gap_s
        ):
            result[-1] = last.model_copy(update={"text": last.text + step.text})
            continue
        result.append(step)
    return result


def normalize_step(step: Step) -> Step:
    """Round ts to milliseconds and offsets to whole pixels."""
    update: dict = {"ts": round(step.ts, 3)}
    if isinstance(step, ClickStep) and step.offset is not None:
        update["offset"] = Offset(x=round(step.offset.x), y=round(step.offset.y))
    return step.model_copy(update=update)


class TraceAssembler:
    """Filters, merges and normalizes raw steps into a versioned trace."""

    def __init__(self, merge_gap_s: float = 1.0):
        self.merge_gap_s = merge_gap_s
        self.log = logger.bind(component="trace_assembler")

    def assemble(self, meta: Optional[TraceMeta], steps: Iterable[Step]) -> Trace:
        raw = list(steps)
        kept = [s for s in raw if not is_recorder_ui_step(s)]
        merged = merge_consecutive_types(kept, self.merge_gap_s)
        normalized = [normalize_step(s) for s in merged]

        self.log.debug(
            "Trace assembled",
            raw_steps=len(raw),
            dropped=len(raw) - len(kept),
            merged=len(kept) - len(merged),
            steps=len(normalized),
        )
        return Trace(meta=meta or TraceMeta(), steps=normalized)
