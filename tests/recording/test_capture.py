"""Tests for the capture engine against snapshot documents."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tracereplay.dom import Box, CaptureEvent, EventKind, SnapshotDocument
from tracereplay.recording.capture import (
    CaptureEngine,
    CaptureOptions,
    CaptureState,
    RecordingIndicator,
    menu_assertion_selector,
)
from tracereplay.recording.models import ClickStep, KeyStep, NavigateStep, ScrollStep, TypeStep, WaitVisibleStep


def event(kind, target=None, **kwargs):
    return CaptureEvent(kind, target=target, **kwargs)


async def type_into(document, element, value, data):
    element.set_value(value)
    await document.dispatch(event(EventKind.INPUT, element, data=data))


class FakeIndicator(RecordingIndicator):
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def show(self):
        self.calls.append("show")
        if self.fail:
            raise RuntimeError("page closed")

    async def hide(self):
        self.calls.append("hide")


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for start/stop semantics."""

    @pytest.mark.asyncio
    async def test_start_records_initial_navigate(self, form_page, clock, capture_options):
        """Test start() seeds the session with the current URL at ts 0."""
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        assert engine.state == CaptureState.RECORDING
        assert engine.steps == [NavigateStep(url="https://example.com", ts=0)]
        assert engine.meta.viewport.width == 1280
        assert engine.meta.user_agent == "tracereplay-snapshot/1.0"

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        clock.advance(1)
        await engine.start()

        assert len(engine.steps) == 1
        assert len(form_page._listeners[EventKind.CLICK]) == 1

    @pytest.mark.asyncio
    async def test_stop_detaches_listeners(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        await engine.stop()

        assert engine.state == CaptureState.IDLE
        assert not form_page.has_listeners()

        await form_page.dispatch(event(EventKind.CLICK, form_page.element("#submit")))
        assert len(engine.steps) == 1

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, form_page, capture_options):
        engine = CaptureEngine(form_page, options=capture_options)

        await engine.stop()

        assert engine.steps == []

    @pytest.mark.asyncio
    async def test_indicator_shown_and_hidden(self, form_page, clock, capture_options):
        indicator = FakeIndicator()
        engine = CaptureEngine(form_page, options=capture_options, indicator=indicator, clock=clock)

        await engine.start()
        assert indicator.calls == ["show"]

        await engine.stop()
        assert indicator.calls == ["show", "hide"]

    @pytest.mark.asyncio
    async def test_indicator_failure_does_not_stop_recording(self, form_page, clock, capture_options):
        indicator = FakeIndicator(fail=True)
        engine = CaptureEngine(form_page, options=capture_options, indicator=indicator, clock=clock)

        await engine.start()

        assert engine.is_recording


# =============================================================================
# Clicks
# =============================================================================


class TestClicks:
    """Tests for click capture and retargeting."""

    @pytest.mark.asyncio
    async def test_click_then_typing_session(self, form_page, clock, capture_options):
        """Test a click followed by two bursts of typing into the same input."""
        form_page.set_box("#submit", Box(100, 200, 80, 30))
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        clock.advance(0.2)
        await form_page.dispatch(
            event(EventKind.POINTER_DOWN, form_page.element("#submit"), client_x=110, client_y=205)
        )

        box = form_page.element("#box")
        await type_into(form_page, box, "hi", "hi")
        await form_page.dispatch(event(EventKind.BLUR, box))

        clock.advance(0.5)
        await type_into(form_page, box, "hihi", "hi")
        await form_page.dispatch(event(EventKind.BLUR, box))
        await engine.stop()

        trace = engine.trace()
        assert [s.type for s in trace.steps] == ["navigate", "click", "type"]

        click = trace.steps[1]
        assert click.selector == "#submit"
        assert (click.offset.x, click.offset.y) == (10, 5)

        typed = trace.steps[2]
        assert typed.selector == "#box"
        assert typed.text == "hihi"
        assert typed.ts == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_click_after_pointerdown_is_deduplicated(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        button = form_page.element("#submit")

        await form_page.dispatch(event(EventKind.POINTER_DOWN, button))
        await form_page.dispatch(event(EventKind.CLICK, button))
        assert len(engine.steps) == 2

        clock.advance(0.3)
        await form_page.dispatch(event(EventKind.CLICK, button))
        assert len(engine.steps) == 3

    @pytest.mark.asyncio
    async def test_click_inside_recorder_ui_is_ignored(self, clock, capture_options):
        document = SnapshotDocument(
            '<div data-recorder-ui="overlay"><button id="rec-stop">Stop</button></div>'
        )
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()

        await document.dispatch(event(EventKind.CLICK, document.element("#rec-stop")))

        assert len(engine.steps) == 1

    @pytest.mark.asyncio
    async def test_click_retargets_to_actionable_ancestor(self, clock, capture_options):
        document = SnapshotDocument(
            '<button data-testid="save-btn"><svg></svg><span id="inner">Save</span></button>'
        )
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()

        await document.dispatch(event(EventKind.CLICK, document.element("#inner")))

        click = engine.steps[-1]
        assert click.selector == '[data-testid="save-btn"]'
        assert click.fallbacks is None

    @pytest.mark.asyncio
    async def test_menu_item_click_adds_assertion(self, clock, capture_options):
        document = SnapshotDocument(
            '<div role="menu">'
            '<div role="menuitem" aria-label="Dark mode"><span id="lbl">Dark mode</span></div>'
            "</div>"
        )
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()

        await document.dispatch(event(EventKind.POINTER_DOWN, document.element("#lbl")))

        click, wait = engine.steps[1:]
        assert isinstance(click, ClickStep)
        assert click.selector == 'div[role="menuitem"][aria-label="Dark mode"]'
        assert click.role == "menuitem"
        assert click.name == "Dark mode"
        assert click.fallbacks == [
            '[role="menuitem"][aria-label="Dark mode"]',
            '[aria-label="Dark mode"]',
        ]
        assert isinstance(wait, WaitVisibleStep)
        assert wait.selector == menu_assertion_selector("Dark mode")
        assert wait.timeout == 3000

    @pytest.mark.asyncio
    async def test_listbox_button_infers_menuitem_role(self, clock, capture_options):
        document = SnapshotDocument(
            '<ul role="listbox"><li><button id="opt">Option A</button></li></ul>'
        )
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()

        await document.dispatch(event(EventKind.CLICK, document.element("#opt")))

        click = engine.steps[1]
        assert click.role == "menuitem"
        assert click.name == "Option A"
        assert engine.steps[2].type == "waitVisible"

    @pytest.mark.asyncio
    async def test_dialog_button_without_name_has_no_assertion(self, clock, capture_options):
        document = SnapshotDocument('<div role="dialog"><button id="x"></button></div>')
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()

        await document.dispatch(event(EventKind.CLICK, document.element("#x")))

        assert [s.type for s in engine.steps] == ["navigate", "click"]
        assert engine.steps[1].role is None

    @pytest.mark.asyncio
    async def test_placeholder_retargets_to_form_input(self, clock, capture_options):
        document = SnapshotDocument(
            '<form><div id="ph" data-placeholder="Ask">Ask anything</div>'
            '<textarea id="prompt"></textarea></form>'
        )
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()

        await document.dispatch(event(EventKind.CLICK, document.element("#ph")))

        assert engine.steps[1].selector == "#prompt"

    @pytest.mark.asyncio
    async def test_placeholder_prefers_primary_input(self, clock):
        document = SnapshotDocument(
            '<div id="ph" data-placeholder="Ask">Ask</div>'
            '<div><textarea id="prompt-textarea"></textarea></div>'
        )
        engine = CaptureEngine(document, options=CaptureOptions(), clock=clock)
        await engine.start()

        await document.dispatch(event(EventKind.CLICK, document.element("#ph")))

        assert engine.steps[1].selector == "#prompt-textarea"

    @pytest.mark.asyncio
    async def test_handler_failure_is_isolated(self, form_page, clock, capture_options):
        """Test a failing handler is reported and later events still record."""
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        broken = MagicMock()
        broken.closest = AsyncMock(side_effect=RuntimeError("detached"))
        await form_page.dispatch(event(EventKind.CLICK, broken))

        assert engine.is_recording
        assert len(engine.steps) == 1

        await form_page.dispatch(event(EventKind.CLICK, form_page.element("#submit")))
        assert len(engine.steps) == 2


# =============================================================================
# Typing
# =============================================================================


class TestTyping:
    """Tests for typing buffers."""

    @pytest.mark.asyncio
    async def test_idle_timer_flushes_buffer(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        await type_into(form_page, form_page.element("#box"), "abc", "abc")
        assert len(engine.steps) == 1

        await asyncio.sleep(0.1)

        assert engine.steps[-1] == TypeStep(selector="#box", text="abc", ts=0)

    @pytest.mark.asyncio
    async def test_stop_flushes_pending_text_once(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        await type_into(form_page, form_page.element("#box"), "abc", "abc")
        await engine.stop()
        await asyncio.sleep(0.1)

        typed = [s for s in engine.steps if s.type == "type"]
        assert len(typed) == 1
        assert typed[0].text == "abc"

    @pytest.mark.asyncio
    async def test_value_diff_when_event_has_no_data(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        box = form_page.element("#box")

        await type_into(form_page, box, "hel", None)
        await type_into(form_page, box, "hello", None)
        await form_page.dispatch(event(EventKind.BLUR, box))

        assert engine.steps[-1].text == "hello"

    @pytest.mark.asyncio
    async def test_value_replaced_records_whole_value(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        box = form_page.element("#box")

        await type_into(form_page, box, "abc", None)
        await form_page.dispatch(event(EventKind.BLUR, box))
        await type_into(form_page, box, "xyz", None)
        await form_page.dispatch(event(EventKind.BLUR, box))

        assert [s.text for s in engine.steps if s.type == "type"] == ["abc", "xyz"]

    @pytest.mark.asyncio
    async def test_enter_flushes_and_records_key(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        box = form_page.element("#box")

        await type_into(form_page, box, "hi", "hi")
        await form_page.dispatch(event(EventKind.KEY_DOWN, box, key="Enter"))

        assert engine.steps[1:] == [
            TypeStep(selector="#box", text="hi", ts=0),
            KeyStep(selector="#box", key="Enter", ts=0),
        ]

    @pytest.mark.asyncio
    async def test_other_keys_are_ignored(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        await form_page.dispatch(event(EventKind.KEY_DOWN, form_page.element("#box"), key="a"))
        await form_page.dispatch(event(EventKind.KEY_DOWN, form_page.element("#submit"), key="Enter"))

        assert len(engine.steps) == 1

    @pytest.mark.asyncio
    async def test_non_editable_input_is_ignored(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        await form_page.dispatch(event(EventKind.INPUT, form_page.element("#submit"), data="x"))
        await engine.stop()

        assert len(engine.steps) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "markup",
        [
            '<input id="f" type="password">',
            '<input id="f" autocomplete="cc-number">',
            '<input id="f" autocomplete="new-password">',
            '<div data-private><input id="f"></div>',
            '<textarea id="f" aria-hidden="true"></textarea>',
        ],
    )
    async def test_private_fields_are_never_recorded(self, markup, clock, capture_options):
        document = SnapshotDocument(markup)
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()
        field = document.element("#f")

        await type_into(document, field, "secret", "secret")
        await document.dispatch(event(EventKind.BLUR, field))
        await engine.stop()

        assert [s.type for s in engine.steps] == ["navigate"]

    @pytest.mark.asyncio
    async def test_content_editable_typing(self, clock, capture_options):
        document = SnapshotDocument('<div id="editor" contenteditable="true"></div>')
        engine = CaptureEngine(document, options=capture_options, clock=clock)
        await engine.start()
        editor = document.element("#editor")

        await type_into(document, editor, "Hello", "Hello")
        await document.dispatch(event(EventKind.BLUR, editor))

        assert engine.steps[-1] == TypeStep(selector="#editor", text="Hello", ts=0)


# =============================================================================
# Scrolling
# =============================================================================


class TestScrolling:
    """Tests for debounced scroll capture."""

    @pytest.mark.asyncio
    async def test_scroll_burst_yields_single_step(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        for y in (100, 200, 300):
            form_page.set_scroll(0, y)
            await form_page.dispatch(event(EventKind.SCROLL))
        await asyncio.sleep(0.1)

        assert engine.steps[1:] == [ScrollStep(x=0, y=300, ts=0)]

    @pytest.mark.asyncio
    async def test_unchanged_position_is_not_recorded(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        await form_page.dispatch(event(EventKind.SCROLL))
        await asyncio.sleep(0.1)

        assert len(engine.steps) == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_scroll(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()

        form_page.set_scroll(0, 500)
        await form_page.dispatch(event(EventKind.SCROLL))
        await engine.stop()
        await asyncio.sleep(0.1)

        assert len(engine.steps) == 1


# =============================================================================
# Timestamps
# =============================================================================


class TestTimestamps:
    """Tests for step timing."""

    @pytest.mark.asyncio
    async def test_timestamps_are_relative_and_ordered(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        button = form_page.element("#submit")

        clock.advance(1.5)
        await form_page.dispatch(event(EventKind.CLICK, button))
        clock.advance(2.0)
        await form_page.dispatch(event(EventKind.CLICK, button))

        assert [s.ts for s in engine.steps] == [0, pytest.approx(1.5), pytest.approx(3.5)]

    @pytest.mark.asyncio
    async def test_clock_going_backwards_is_clamped(self, form_page, clock, capture_options):
        engine = CaptureEngine(form_page, options=capture_options, clock=clock)
        await engine.start()
        button = form_page.element("#submit")

        clock.advance(2)
        await form_page.dispatch(event(EventKind.CLICK, button))
        clock.advance(-1)
        await form_page.dispatch(event(EventKind.CLICK, button))

        assert engine.steps[2].ts == engine.steps[1].ts
