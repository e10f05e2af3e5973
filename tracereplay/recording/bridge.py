"""Playwright capture bridge and recording overlay.

DOM listeners are injected into the page and forward every event over an
exposed binding. The binding receives the event target as a live handle,
wraps it as a PlaywrightElement and dispatches a CaptureEvent on the
document, where the capture engine's listeners pick it up.
"""

import asyncio
from typing import Any, Optional

import structlog
from playwright.async_api import JSHandle, Page

from ..dom.base import CaptureEvent, EventKind
from ..dom.playwright_dom import PlaywrightDocument
from .capture import RecordingIndicator

logger = structlog.get_logger()

EMIT_BINDING = "__traceReplayEmit"
STOP_BINDING = "__traceReplayStop"

LISTENER_JS = f"""() => {{
  if (window.__traceReplayListening) return;
  window.__traceReplayListening = true;
  const emit = (kind, e) => {{
    const target = e && e.target instanceof Element ? e.target : null;
    window.{EMIT_BINDING}({{
      target,
      info: {{
        kind,
        clientX: (e && e.clientX) || 0,
        clientY: (e && e.clientY) || 0,
        data: e && typeof e.data === 'string' ? e.data : null,
        key: (e && e.key) || null
      }}
    }});
  }};
  for (const kind of ['pointerdown', 'click', 'input', 'blur', 'keydown']) {{
    document.addEventListener(kind, e => emit(kind, e), true);
  }}
  window.addEventListener('scroll', () => emit('scroll', null), {{ capture: true, passive: true }});
}}"""

OVERLAY_SHOW_JS = f"""() => {{
  if (document.querySelector('[data-recorder-ui="overlay"]')) return;
  const el = document.createElement('div');
  el.setAttribute('data-recorder-ui', 'overlay');
  el.style.cssText = `
    position: fixed; top: 12px; right: 12px; z-index: 2147483647;
    background: rgba(254, 252, 248, 0.95); color: #2c2c2c;
    font: 500 12px/1.3 -apple-system, BlinkMacSystemFont, 'Segoe UI', system-ui, sans-serif;
    padding: 8px 12px; border-radius: 8px; display: flex; gap: 8px; align-items: center;
    box-shadow: 0 2px 8px rgba(44, 44, 44, 0.15); pointer-events: none;`;
  el.innerHTML = `
    <span style="color: #4a4a4a;">&#9679;</span>
    <span style="font-weight: 600;">REC</span>
    <button id="rec-stop" style="margin-left: 6px; background: #2c2c2c; color: #fefcf8;
      border: none; border-radius: 4px; padding: 4px 8px; cursor: pointer;
      pointer-events: auto; font-size: 11px;">Stop</button>`;
  el.querySelector('#rec-stop').addEventListener('click', e => {{
    e.preventDefault();
    e.stopImmediatePropagation();
    window.{STOP_BINDING}();
  }}, {{ capture: true }});
  document.documentElement.appendChild(el);
}}"""

OVERLAY_HIDE_JS = """() => {
  const el = document.querySelector('[data-recorder-ui="overlay"]');
  if (el) el.remove();
}"""


class PlaywrightCaptureBridge:
    """Forwards page events to a PlaywrightDocument.

    Example:
        document = PlaywrightDocument(page)
        bridge = PlaywrightCaptureBridge(page, document)
        await bridge.install()
        engine = CaptureEngine(document, indicator=OverlayIndicator(page))
    """

    def __init__(self, page: Page, document: PlaywrightDocument):
        self.page = page
        self.document = document
        self._installed = False
        self.log = logger.bind(component="capture_bridge")

    async def install(self) -> None:
        """Expose the binding and inject listeners into current and future documents."""
        if self._installed:
            return
        await self.page.expose_binding(EMIT_BINDING, self._on_event, handle=True)
        await self.page.add_init_script(f"({LISTENER_JS})()")
        await self.page.evaluate(LISTENER_JS)
        self._installed = True
        self.log.info("Capture bridge installed", url=self.page.url)

    async def _on_event(self, source: Any, payload: JSHandle) -> None:
        try:
            info = await (await payload.get_property("info")).json_value()
            target = await self.document.wrap(await payload.get_property("target"))
            event = CaptureEvent(
                kind=EventKind(info["kind"]),
                target=target,
                client_x=float(info.get("clientX") or 0),
                client_y=float(info.get("clientY") or 0),
                data=info.get("data"),
                key=info.get("key"),
            )
            await self.document.dispatch(event)
        except Exception as e:
            self.log.error("Bridged event dropped", error=str(e))


class OverlayIndicator(RecordingIndicator):
    """REC badge with a Stop button drawn into the recorded page.

    Pressing Stop sets :attr:`stop_requested`. The overlay is redrawn after
    each page load while it is shown.
    """

    def __init__(self, page: Page):
        self.page = page
        self.stop_requested = asyncio.Event()
        self._visible = False
        self._bound = False
        self.log = logger.bind(component="recording_indicator")

    async def _bind(self) -> None:
        if self._bound:
            return
        await self.page.expose_function(STOP_BINDING, self._on_stop)
        self.page.on("load", self._on_load)
        self._bound = True

    def _on_stop(self) -> None:
        self.log.info("Stop requested from overlay")
        self.stop_requested.set()

    async def _on_load(self, page: Optional[Page] = None) -> None:
        if self._visible:
            await self.page.evaluate(OVERLAY_SHOW_JS)

    async def show(self) -> None:
        await self._bind()
        self._visible = True
        await self.page.evaluate(OVERLAY_SHOW_JS)

    async def hide(self) -> None:
        self._visible = False
        if not self.page.is_closed():
            await self.page.evaluate(OVERLAY_HIDE_JS)
