"""Event capture engine.

Listens to DOM events on a document while recording and turns them into
typed steps. Typing and scrolling are debounced; clicks are retargeted to
the element a user meant to hit.

    Idle --start()--> Recording --stop()--> Idle
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import structlog

from ..config import Settings, get_settings
from ..dom.base import CaptureEvent, DomDocument, DomElement, EventKind, Listener
from ..exceptions import InternalCaptureError
from .assembler import TraceAssembler
from .models import (
    ClickStep,
    KeyStep,
    NavigateStep,
    Offset,
    ScrollStep,
    Step,
    Trace,
    TraceMeta,
    TypeStep,
    Viewport,
    WaitVisibleStep,
)
from .selectors import SelectorBuilder, attr_selector, quote_attr

logger = structlog.get_logger()

RECORDER_UI = "[data-recorder-ui]"
ACTIONABLE_ELEMENTS = 'textarea,input,button,[role="button"],a[href],select,[data-testid],[aria-label]'
POPUP_CONTEXTS = '[role="menu"],[role="listbox"],[role="dialog"],[data-radix-portal],[data-portal]'
MENU_CONTAINERS = '[role="menu"],[role="listbox"]'
MENU_ITEMS = '[role="menuitem"],[role="option"],button,[role="button"]'
PLACEHOLDER_ELEMENTS = "[data-placeholder]"
FORM_CONTAINERS = 'form,[role="form"],[data-testid],.composer'
PRIVATE_CONTAINERS = "[data-private],[data-sensitive]"
PRIVATE_AUTOCOMPLETE = ("current-password", "new-password")


def menu_assertion_selector(label: str) -> str:
    """Selector asserting that a toggle-style menu item ended up checked."""
    return f'[role^="menuitem"][aria-label={quote_attr(label)}][aria-checked="true"]'


@dataclass
class CaptureOptions:
    """Timing and targeting knobs for a capture session."""

    typing_flush_ms: int = 200
    scroll_debounce_ms: int = 120
    click_dedupe_ms: int = 250
    merge_type_gap_s: float = 1.0
    max_selector_depth: int = 4
    menu_assert_timeout_ms: int = 3000
    primary_input_selector: str = "#prompt-textarea"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CaptureOptions":
        settings = settings or get_settings()
        return cls(
            typing_flush_ms=settings.typing_flush_ms,
            scroll_debounce_ms=settings.scroll_debounce_ms,
            click_dedupe_ms=settings.click_dedupe_ms,
            merge_type_gap_s=settings.merge_type_gap_s,
            max_selector_depth=settings.max_selector_depth,
            menu_assert_timeout_ms=settings.menu_assert_timeout_ms,
            primary_input_selector=settings.primary_input_selector,
        )


class RecordingIndicator(ABC):
    """On-page marker shown while a session is recording."""

    @abstractmethod
    async def show(self) -> None:
        pass

    @abstractmethod
    async def hide(self) -> None:
        pass


class CaptureState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


@dataclass
class TypingBuffer:
    """Pending text for one element being edited."""

    element: DomElement
    text: str = ""
    timer: Optional[asyncio.Task] = field(default=None, repr=False)


class CaptureEngine:
    """Records interactions on a document as trace steps.

    Example:
        engine = CaptureEngine(document)
        await engine.start()
        ...  # user interacts, document dispatches events
        await engine.stop()
        trace = engine.trace()
    """

    def __init__(
        self,
        document: DomDocument,
        builder: Optional[SelectorBuilder] = None,
        options: Optional[CaptureOptions] = None,
        indicator: Optional[RecordingIndicator] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.document = document
        self.options = options or CaptureOptions()
        self.builder = builder or SelectorBuilder(document, max_depth=self.options.max_selector_depth)
        self.indicator = indicator
        self.clock = clock

        self.meta = TraceMeta()
        self._state = CaptureState.IDLE
        self._steps: list[Step] = []
        self._t0 = 0.0
        self._lock = asyncio.Lock()
        self._buffers: dict[Hashable, TypingBuffer] = {}
        self._observed_values: dict[Hashable, str] = {}
        self._tasks: set[asyncio.Task] = set()
        self._scroll_task: Optional[asyncio.Task] = None
        self._last_scroll: tuple[int, int] = (0, 0)
        self._skip_click_until = 0.0
        self._listeners: list[tuple[EventKind, Listener]] = []
        self.log = logger.bind(component="capture_engine")

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is CaptureState.RECORDING

    @property
    def steps(self) -> list[Step]:
        """Raw steps recorded so far, in append order."""
        return list(self._steps)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """Begin recording. No-op when a session is already active."""
        async with self._lock:
            if self.is_recording:
                return

            self._t0 = self.clock()
            url = await self.document.url()
            width, height = await self.document.viewport()
            self.meta = TraceMeta(
                user_agent=await self.document.user_agent(),
                viewport=Viewport(width=width, height=height),
            )
            self._steps = [NavigateStep(url=url, ts=0)]
            self._last_scroll = await self.document.scroll_position()
            self._skip_click_until = 0.0
            self._state = CaptureState.RECORDING

            self._listeners = [
                (EventKind.POINTER_DOWN, self._guarded("pointerdown", self._on_pointer_down)),
                (EventKind.CLICK, self._guarded("click", self._on_click)),
                (EventKind.INPUT, self._guarded("input", self._on_input)),
                (EventKind.BLUR, self._guarded("blur", self._on_blur)),
                (EventKind.KEY_DOWN, self._guarded("keydown", self._on_key_down)),
                (EventKind.SCROLL, self._guarded("scroll", self._on_scroll)),
            ]
            for kind, listener in self._listeners:
                self.document.add_listener(kind, listener)

        self.log.info("Recording started", url=url, viewport=f"{width}x{height}")
        if self.indicator is not None:
            await self._call_indicator("show", self.indicator.show)

    async def stop(self) -> None:
        """End recording: cancel timers, flush typing, detach listeners."""
        async with self._lock:
            if not self.is_recording:
                return
            self._state = CaptureState.IDLE

            tasks = list(self._tasks)
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.clear()
            self._scroll_task = None

            for key in list(self._buffers):
                try:
                    await self._flush(key)
                except Exception as e:
                    self._report("flush", e)
            self._buffers.clear()
            self._observed_values.clear()

            for kind, listener in self._listeners:
                self.document.remove_listener(kind, listener)
            self._listeners = []
            self.builder.clear()

        self.log.info("Recording stopped", steps=len(self._steps))
        if self.indicator is not None:
            await self._call_indicator("hide", self.indicator.hide)

    def trace(self) -> Trace:
        """Assembled trace of the steps recorded so far."""
        return TraceAssembler(merge_gap_s=self.options.merge_type_gap_s).assemble(self.meta, self._steps)

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _elapsed(self) -> float:
        return max(0.0, self.clock() - self._t0)

    def _append(self, step: Step) -> None:
        step.ts = self._elapsed()
        if self._steps and step.ts < self._steps[-1].ts:
            step.ts = self._steps[-1].ts
        self._steps.append(step)
        self.log.debug("Step captured", step_type=step.type, ts=round(step.ts, 3))

    def _report(self, handler: str, cause: Exception) -> None:
        error = InternalCaptureError(handler, cause)
        self.log.error("Capture handler failed", handler=handler, error=str(error))

    async def _call_indicator(self, action: str, call: Callable[[], Awaitable[None]]) -> None:
        try:
            await call()
        except Exception as e:
            self._report(f"indicator.{action}", e)

    def _guarded(self, name: str, handler: Callable[[CaptureEvent], Awaitable[None]]) -> Listener:
        async def listener(event: CaptureEvent) -> None:
            if not self.is_recording:
                return
            try:
                async with self._lock:
                    if self.is_recording:
                        await handler(event)
            except Exception as e:
                self._report(name, e)

        return listener

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _in_recorder_ui(self, element: Optional[DomElement]) -> bool:
        return element is not None and await element.closest(RECORDER_UI) is not None

    async def _is_editable(self, element: DomElement) -> bool:
        return element.tag_name in ("input", "textarea") or await element.is_content_editable()

    async def _is_private(self, element: DomElement) -> bool:
        if ((await element.get_attribute("type")) or "").lower() == "password":
            return True
        autocomplete = ((await element.get_attribute("autocomplete")) or "").lower()
        if autocomplete in PRIVATE_AUTOCOMPLETE or autocomplete.startswith("cc-"):
            return True
        if await element.closest(PRIVATE_CONTAINERS) is not None:
            return True
        return await element.get_attribute("aria-hidden") == "true"

    # Clicks

    async def _on_pointer_down(self, event: CaptureEvent) -> None:
        await self._record_click(event)
        self._skip_click_until = self.clock() + self.options.click_dedupe_ms / 1000

    async def _on_click(self, event: CaptureEvent) -> None:
        if self.clock() <= self._skip_click_until:
            return
        await self._record_click(event)

    async def _record_click(self, event: CaptureEvent) -> None:
        target = event.target
        if target is None or await self._in_recorder_ui(target):
            return

        role: Optional[str] = None
        name: Optional[str] = None
        if await target.closest(POPUP_CONTEXTS) is not None:
            target, role, name, fallbacks = await self._menu_target(target)
        else:
            target, fallbacks = await self._page_target(target)

        fingerprint = await self.builder.fingerprint(target)
        for selector in fingerprint.fallbacks:
            if selector not in fallbacks:
                fallbacks.append(selector)
        fallbacks = [s for s in fallbacks if s != fingerprint.primary]

        box = await target.bounding_box()
        offset = Offset()
        if box is not None:
            offset = Offset(x=round(event.client_x - box.x), y=round(event.client_y - box.y))

        self._append(
            ClickStep(
                selector=fingerprint.primary,
                fallbacks=fallbacks or None,
                role=role,
                name=name,
                offset=offset,
            )
        )

        if role and (role.startswith("menuitem") or role == "option") and name:
            self._append(
                WaitVisibleStep(
                    selector=menu_assertion_selector(name),
                    timeout=self.options.menu_assert_timeout_ms,
                )
            )

    async def _menu_target(self, target: DomElement):
        item = await target.closest(MENU_ITEMS) or target
        role = await item.get_attribute("role")
        if not role and await item.closest(MENU_CONTAINERS) is not None:
            role = "menuitem"
        name = ((await item.get_attribute("aria-label")) or await item.text()).strip()

        fallbacks = []
        test_id = await item.get_attribute("data-testid")
        if test_id:
            fallbacks.append(attr_selector("data-testid", test_id))
        if role and name:
            fallbacks.append(attr_selector("aria-label", name, role=role))
        return item, role or None, name or None, fallbacks

    async def _page_target(self, target: DomElement):
        actionable = await target.closest(ACTIONABLE_ELEMENTS)
        if actionable is not None:
            target = actionable

        if await target.matches(PLACEHOLDER_ELEMENTS):
            real = await self.document.query_selector(self.options.primary_input_selector)
            if real is None:
                container = await target.closest(FORM_CONTAINERS)
                if container is not None:
                    real = await container.query_selector("textarea, input")
            target = real or target

        fallbacks = []
        test_id = await target.get_attribute("data-testid")
        label = await target.get_attribute("aria-label")
        role = await target.get_attribute("role")
        if test_id:
            fallbacks.append(attr_selector("data-testid", test_id))
        if label:
            fallbacks.append(attr_selector("aria-label", label, tag=target.tag_name, role=role))
        return target, fallbacks

    # Typing

    async def _on_input(self, event: CaptureEvent) -> None:
        target = event.target
        if target is None or await self._in_recorder_ui(target):
            return
        if not await self._is_editable(target) or await self._is_private(target):
            return

        key = await target.identity()
        buffer = self._buffers.get(key)
        if buffer is None:
            buffer = self._buffers[key] = TypingBuffer(element=target)

        current = await target.value()
        if event.data is not None:
            delta = event.data
        else:
            last = self._observed_values.get(key, "")
            delta = current[len(last):] if current.startswith(last) else current

        buffer.text += delta
        self._observed_values[key] = current

        if buffer.timer is not None:
            buffer.timer.cancel()
        buffer.timer = self._spawn(self._flush_later(key))

    async def _flush_later(self, key: Hashable) -> None:
        await asyncio.sleep(self.options.typing_flush_ms / 1000)
        try:
            async with self._lock:
                if self.is_recording:
                    await self._flush(key)
        except Exception as e:
            self._report("typing_flush", e)

    async def _flush(self, key: Hashable) -> None:
        buffer = self._buffers.pop(key, None)
        if buffer is None:
            return
        if buffer.timer is not None and buffer.timer is not asyncio.current_task():
            buffer.timer.cancel()
        if not buffer.text:
            return

        selector = await self.builder.build_selector(buffer.element)
        self._append(TypeStep(selector=selector, text=buffer.text))
        self._observed_values[key] = await buffer.element.value()

    async def _on_blur(self, event: CaptureEvent) -> None:
        target = event.target
        if target is None or not await self._is_editable(target):
            return
        await self._flush(await target.identity())

    async def _on_key_down(self, event: CaptureEvent) -> None:
        target = event.target
        if event.key != "Enter" or target is None or await self._in_recorder_ui(target):
            return
        if not await self._is_editable(target):
            return
        await self._flush(await target.identity())
        self._append(KeyStep(selector=await self.builder.build_selector(target), key="Enter"))

    # Scrolling

    async def _on_scroll(self, event: CaptureEvent) -> None:
        if self._scroll_task is not None:
            self._scroll_task.cancel()
        self._scroll_task = self._spawn(self._scroll_later())

    async def _scroll_later(self) -> None:
        await asyncio.sleep(self.options.scroll_debounce_ms / 1000)
        try:
            async with self._lock:
                if not self.is_recording:
                    return
                position = await self.document.scroll_position()
                if position == self._last_scroll:
                    return
                self._last_scroll = position
                x, y = position
                self._append(ScrollStep(x=x, y=y))
        except Exception as e:
            self._report("scroll", e)
