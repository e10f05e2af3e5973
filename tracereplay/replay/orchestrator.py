"""Replay orchestration.

Executes a trace one step at a time against a document. Two failure
policies exist:

- FAIL_FAST: the first failing step aborts the run and re-raises
  (in-page engine semantics, the initial navigate is skipped)
- CONTINUE: failures are recorded as artifacts and the run moves on
  (standalone driver semantics, every navigate is performed)
"""

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, assert_never

import structlog

from ..config import Settings, get_settings
from ..dom.base import DomDocument
from ..recording.models import (
    ClickStep,
    KeyStep,
    NavigateStep,
    ScrollStep,
    Step,
    Trace,
    TypeStep,
    WaitVisibleStep,
)
from ..utils.logging import ReplayLogger
from .artifacts import ArtifactRecorder, StepFailure
from .resolver import ElementResolver
from .status import StatusChannel, StatusEvent

logger = structlog.get_logger()


class FailurePolicy(str, Enum):
    FAIL_FAST = "fail_fast"
    CONTINUE = "continue"


class ReplayStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    FAILED = "failed"


@dataclass
class ReplayOptions:
    """Replay behavior.

    Example:
        options = ReplayOptions.from_settings(policy=FailurePolicy.CONTINUE, respect_timing=True)
    """

    failure_policy: FailurePolicy = FailurePolicy.FAIL_FAST
    respect_timing: bool = False
    speed: float = 1.0
    skip_initial_navigate: bool = True

    element_timeout_ms: int = 5000
    poll_interval_ms: int = 100
    wait_visible_default_ms: int = 5000
    scroll_into_view_delay_ms: int = 20
    highlight_ms: int = 200
    type_char_delay_ms: int = 30
    menu_wait_timeout_ms: int = 3000
    menu_trigger_markers: list[str] = field(default_factory=lambda: ["composer-plus-btn"])

    @property
    def char_delay_ms(self) -> float:
        """Per-character typing delay scaled by speed."""
        return self.type_char_delay_ms / self.speed if self.speed > 0 else self.type_char_delay_ms

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        policy: FailurePolicy = FailurePolicy.FAIL_FAST,
        **overrides,
    ) -> "ReplayOptions":
        settings = settings or get_settings()
        in_page = policy is FailurePolicy.FAIL_FAST
        values = dict(
            failure_policy=policy,
            skip_initial_navigate=in_page,
            element_timeout_ms=settings.element_timeout_ms if in_page else settings.driver_timeout_ms,
            poll_interval_ms=settings.poll_interval_ms,
            wait_visible_default_ms=settings.wait_visible_default_ms,
            scroll_into_view_delay_ms=settings.scroll_into_view_delay_ms,
            highlight_ms=settings.highlight_ms,
            type_char_delay_ms=settings.type_char_delay_ms,
            menu_wait_timeout_ms=settings.menu_wait_timeout_ms,
            menu_trigger_markers=list(settings.menu_trigger_markers),
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class ReplayResult:
    """Outcome of one replay run."""

    status: ReplayStatus
    total_steps: int
    completed_steps: int = 0
    failures: list[StepFailure] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status is ReplayStatus.COMPLETED


class ReplayOrchestrator:
    """Runs traces step by step.

    Args:
        document: Page to replay on
        options: Timing, timeouts and failure policy
        resolver: Element resolver (built from options when omitted)
        status: Channel receiving started/step/done/error events
        artifacts: Failure artifact writer, used with FailurePolicy.CONTINUE
    """

    def __init__(
        self,
        document: DomDocument,
        options: Optional[ReplayOptions] = None,
        resolver: Optional[ElementResolver] = None,
        status: Optional[StatusChannel] = None,
        artifacts: Optional[ArtifactRecorder] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.document = document
        self.options = options or ReplayOptions()
        self.resolver = resolver or ElementResolver(
            document,
            timeout_ms=self.options.element_timeout_ms,
            poll_interval_ms=self.options.poll_interval_ms,
        )
        self.status = status or StatusChannel()
        self.artifacts = artifacts
        self.clock = clock
        self.log = logger.bind(component="replay_orchestrator", policy=self.options.failure_policy.value)
        self._replay_log: Optional[ReplayLogger] = None

    async def run(self, trace: Trace) -> ReplayResult:
        """Replay every step of ``trace``.

        Raises:
            Exception: the first step failure under FailurePolicy.FAIL_FAST
        """
        steps = trace.steps
        result = ReplayResult(status=ReplayStatus.COMPLETED, total_steps=len(steps))
        replay_log = self._replay_log = ReplayLogger(self.options.failure_policy.value, len(steps))
        run_started = self.clock()

        await self.status.emit(StatusEvent.started())
        replay_log.run_started(respect_timing=self.options.respect_timing, speed=self.options.speed)
        await self.document.wait_for_load()

        previous_ts = steps[0].ts
        for index, step in enumerate(steps):
            if self.options.respect_timing:
                delay_ms = max(0, math.floor((step.ts - previous_ts) * 1000))
                if delay_ms > 0:
                    await asyncio.sleep(delay_ms / 1000)
                previous_ts = step.ts

            await self.status.emit(StatusEvent.step(index, step.type))
            replay_log.step_started(index, step.type, target=self._describe(step))
            step_started = self.clock()

            try:
                await self.execute_step(index, step)
            except Exception as e:
                message = str(e) or type(e).__name__
                replay_log.step_failed(index, step.type, message)

                if self.options.failure_policy is FailurePolicy.FAIL_FAST:
                    result.status = ReplayStatus.FAILED
                    result.duration_ms = int((self.clock() - run_started) * 1000)
                    await self.status.emit(StatusEvent.error(message, index=index))
                    replay_log.run_completed(result.status.value)
                    raise

                result.failures.append(await self._record_failure(index, step, message))
                continue

            result.completed_steps += 1
            replay_log.step_completed(index, step.type, int((self.clock() - step_started) * 1000))

        if result.failures:
            result.status = ReplayStatus.COMPLETED_WITH_FAILURES
        result.duration_ms = int((self.clock() - run_started) * 1000)
        await self.status.emit(StatusEvent.done())
        replay_log.run_completed(result.status.value)
        return result

    async def _record_failure(self, index: int, step: Step, message: str) -> StepFailure:
        selector = getattr(step, "selector", None) or getattr(step, "url", None)
        if self.artifacts is None:
            return StepFailure(index=index, type=step.type, selector=selector, message=message)
        return await self.artifacts.record_failure(self.document, index, step.type, selector, message)

    @staticmethod
    def _describe(step: Step) -> Optional[str]:
        return getattr(step, "selector", None) or getattr(step, "url", None) or getattr(step, "name", None)

    # ==========================================================================
    # Step execution
    # ==========================================================================

    async def execute_step(self, index: int, step: Step) -> None:
        match step:
            case NavigateStep():
                await self._navigate(index, step)
            case ClickStep():
                await self._click(step)
            case TypeStep():
                await self._type(step)
            case KeyStep():
                await self._press_key(step)
            case ScrollStep():
                await self.document.scroll_to(step.x, step.y)
            case WaitVisibleStep():
                await self._wait_visible(index, step)
            case _:
                assert_never(step)

    async def _navigate(self, index: int, step: NavigateStep) -> None:
        if index == 0 and self.options.skip_initial_navigate:
            self.log.debug("Skipping initial navigation", url=step.url)
            return
        await self.document.navigate(step.url)
        await self.document.wait_for_load()

    async def _highlight(self, element) -> None:
        if self.options.highlight_ms > 0:
            await element.highlight(self.options.highlight_ms)
            await asyncio.sleep(self.options.highlight_ms / 1000)

    async def _click(self, step: ClickStep) -> None:
        element = await self.resolver.resolve_step(step, self.options.element_timeout_ms)

        await element.scroll_into_view()
        await asyncio.sleep(self.options.scroll_into_view_delay_ms / 1000)
        await self._highlight(element)

        box = await element.bounding_box() if step.offset is not None else None
        if step.offset is not None and box is not None:
            x = max(0, min(step.offset.x, math.floor(box.width) - 1))
            y = max(0, min(step.offset.y, math.floor(box.height) - 1))
            await element.click_at(x, y)
        else:
            await element.activate()

        if self._is_menu_trigger(step):
            self.log.debug("Waiting for menu after trigger click", selector=step.selector)
            if not await self.resolver.wait_for_menu(self.options.menu_wait_timeout_ms):
                self.log.warning("Menu did not appear", selector=step.selector)

    def _is_menu_trigger(self, step: ClickStep) -> bool:
        return any(
            marker in selector
            for marker in self.options.menu_trigger_markers
            for selector in step.selectors
        )

    async def _type(self, step: TypeStep) -> None:
        element = await self.resolver.resolve_step(step, self.options.element_timeout_ms)
        await self._highlight(element)
        await element.focus()

        if await element.is_content_editable():
            await element.insert_text(step.text, char_delay_ms=self.options.char_delay_ms)
        else:
            await element.append_value(step.text)

    async def _press_key(self, step: KeyStep) -> None:
        element = await self.resolver.resolve_step(step, self.options.element_timeout_ms)
        await element.focus()
        await element.press_key(step.key or "Enter")

    async def _wait_visible(self, index: int, step: WaitVisibleStep) -> None:
        timeout_ms = step.timeout or self.options.wait_visible_default_ms
        if not await self.resolver.wait_visible(step.selector, timeout_ms):
            if self._replay_log is not None:
                self._replay_log.wait_timed_out(index, step.selector, timeout_ms)
