"""Live DOM access through Playwright element handles."""

import asyncio
from typing import Any, Hashable, Optional

from playwright.async_api import ElementHandle, JSHandle, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..exceptions import InvalidSelectorError, NavigationError
from .base import Box, DomDocument, DomElement

_INVALID = "__invalidSelector"

IDENTITY_JS = """el => {
  const ids = window.__traceReplayIds || (window.__traceReplayIds = new WeakMap());
  if (!ids.has(el)) {
    window.__traceReplayNextId = (window.__traceReplayNextId || 0) + 1;
    ids.set(el, window.__traceReplayNextId);
  }
  return ids.get(el);
}"""

ELEMENT_QUERY_ALL_JS = f"""(root, s) => {{
  try {{ return Array.from(root.querySelectorAll(s)); }}
  catch (e) {{ return {{ {_INVALID}: String((e && e.message) || e) }}; }}
}}"""

PAGE_QUERY_ALL_JS = f"""s => {{
  try {{ return Array.from(document.querySelectorAll(s)); }}
  catch (e) {{ return {{ {_INVALID}: String((e && e.message) || e) }}; }}
}}"""

CLOSEST_JS = f"""(el, s) => {{
  try {{ return el.closest(s); }}
  catch (e) {{ return {{ {_INVALID}: String((e && e.message) || e) }}; }}
}}"""

MATCHES_JS = f"""(el, s) => {{
  try {{ return el.matches(s); }}
  catch (e) {{ return {{ {_INVALID}: String((e && e.message) || e) }}; }}
}}"""

LABEL_CARRIERS_JS = """expected => {
  const labels = new Map();
  const label = el => {
    if (!labels.has(el)) {
      const raw = el.getAttribute('aria-label') || (el.innerText ?? el.textContent ?? '');
      labels.set(el, raw.replace(/\\s+/g, ' ').trim().toLowerCase());
    }
    return labels.get(el);
  };
  const matches = el => {
    const text = label(el);
    return text !== '' && text.includes(expected);
  };
  return Array.from(document.querySelectorAll('*')).filter(el =>
    matches(el) && (el.getAttribute('aria-label') || !Array.from(el.children).some(matches))
  );
}"""

VISIBLE_JS = """el => {
  const style = getComputedStyle(el);
  if (style.display === 'none' || style.visibility === 'hidden') return false;
  const rect = el.getBoundingClientRect();
  return rect.width > 0 && rect.height > 0;
}"""

RECT_JS = """el => {
  const r = el.getBoundingClientRect();
  return { x: r.left, y: r.top, width: r.width, height: r.height };
}"""

NTH_OF_TYPE_JS = """el => {
  const parent = el.parentElement;
  if (!parent) return [1, 1];
  const same = Array.from(parent.children).filter(c => c.tagName === el.tagName);
  return [same.indexOf(el) + 1, same.length];
}"""

CARET_TO_END_JS = """el => {
  el.focus({ preventScroll: true });
  const range = document.createRange();
  range.selectNodeContents(el);
  range.collapse(false);
  const selection = window.getSelection();
  selection.removeAllRanges();
  selection.addRange(range);
}"""

APPEND_VALUE_JS = """(el, text) => {
  el.value = (el.value || '') + text;
  el.dispatchEvent(new InputEvent('input', { bubbles: true, data: text, inputType: 'insertText' }));
}"""

HIGHLIGHT_JS = """(el, ms) => {
  const rect = el.getBoundingClientRect();
  const box = document.createElement('div');
  box.setAttribute('data-recorder-ui', 'highlight');
  Object.assign(box.style, {
    position: 'fixed', left: rect.left + 'px', top: rect.top + 'px',
    width: rect.width + 'px', height: rect.height + 'px',
    border: '2px solid #2c2c2c', borderRadius: '6px',
    background: 'rgba(44, 44, 44, 0.08)', zIndex: '2147483647',
    pointerEvents: 'none', transition: 'opacity 0.25s', opacity: '1'
  });
  document.body.appendChild(box);
  setTimeout(() => { box.style.opacity = '0'; }, ms);
  setTimeout(() => box.remove(), ms * 2);
}"""


async def _invalid_reason(handle: JSHandle) -> Optional[str]:
    reason = await handle.evaluate(
        f"v => (v && typeof v === 'object' && !(v instanceof Node) && v.{_INVALID}) || null"
    )
    return reason or None


class PlaywrightElement(DomElement):
    """DomElement over a Playwright ElementHandle."""

    def __init__(self, document: "PlaywrightDocument", handle: ElementHandle, tag_name: str):
        self._document = document
        self.handle = handle
        self._tag_name = tag_name

    def __repr__(self) -> str:
        return f"<PlaywrightElement {self._tag_name}>"

    @property
    def tag_name(self) -> str:
        return self._tag_name

    async def identity(self) -> Hashable:
        return await self.handle.evaluate(IDENTITY_JS)

    async def get_attribute(self, name: str) -> Optional[str]:
        return await self.handle.get_attribute(name)

    async def attributes(self) -> dict[str, str]:
        return await self.handle.evaluate(
            "el => Object.fromEntries(Array.from(el.attributes).map(a => [a.name, a.value]))"
        )

    async def parent(self) -> Optional["PlaywrightElement"]:
        handle = await self.handle.evaluate_handle("el => el.parentElement")
        return await self._document.wrap(handle)

    async def children(self) -> list["PlaywrightElement"]:
        handle = await self.handle.evaluate_handle("el => Array.from(el.children)")
        return await self._document.wrap_all(handle)

    async def closest(self, selector: str) -> Optional["PlaywrightElement"]:
        handle = await self.handle.evaluate_handle(CLOSEST_JS, selector)
        reason = await _invalid_reason(handle)
        if reason:
            raise InvalidSelectorError(selector, reason)
        return await self._document.wrap(handle)

    async def matches(self, selector: str) -> bool:
        result: Any = await self.handle.evaluate(MATCHES_JS, selector)
        if isinstance(result, dict):
            raise InvalidSelectorError(selector, result.get(_INVALID, ""))
        return bool(result)

    async def query_selector_all(self, selector: str) -> list["PlaywrightElement"]:
        handle = await self.handle.evaluate_handle(ELEMENT_QUERY_ALL_JS, selector)
        return await self._document.unpack_query(handle, selector)

    async def text(self) -> str:
        raw = await self.handle.evaluate("el => el.innerText ?? el.textContent ?? ''")
        return " ".join((raw or "").split())

    async def value(self) -> str:
        return await self.handle.evaluate("el => el.isContentEditable ? el.innerText : (el.value ?? '')") or ""

    async def is_content_editable(self) -> bool:
        return bool(await self.handle.evaluate("el => el.isContentEditable === true"))

    async def bounding_box(self) -> Optional[Box]:
        rect = await self.handle.evaluate(RECT_JS)
        return Box(**rect) if rect else None

    async def is_visible(self) -> bool:
        return bool(await self.handle.evaluate(VISIBLE_JS))

    async def nth_of_type(self) -> tuple[int, int]:
        position, count = await self.handle.evaluate(NTH_OF_TYPE_JS)
        return int(position), int(count)

    async def scroll_into_view(self) -> None:
        await self.handle.evaluate(
            "el => el.scrollIntoView({ block: 'center', inline: 'center', behavior: 'instant' })"
        )

    async def click_at(self, x: int, y: int) -> None:
        box = await self.bounding_box()
        if box is None:
            await self.activate()
            return
        await self._document.page.mouse.click(box.x + x, box.y + y)

    async def activate(self) -> None:
        await self.handle.click(timeout=self._document.action_timeout_ms)

    async def focus(self) -> None:
        await self.handle.focus()

    async def insert_text(self, text: str, char_delay_ms: float = 0) -> None:
        await self.handle.evaluate(CARET_TO_END_JS)
        keyboard = self._document.page.keyboard
        for char in text:
            await keyboard.insert_text(char)
            await asyncio.sleep(char_delay_ms / 1000)

    async def append_value(self, text: str) -> None:
        await self.handle.evaluate(APPEND_VALUE_JS, text)

    async def press_key(self, key: str) -> None:
        await self.handle.press(key, timeout=self._document.action_timeout_ms)

    async def highlight(self, duration_ms: int = 300) -> None:
        await self.handle.evaluate(HIGHLIGHT_JS, duration_ms)

    async def dispose(self) -> None:
        await self.handle.dispose()


class PlaywrightDocument(DomDocument):
    """DomDocument over a Playwright page.

    Args:
        page: Playwright page the document is bound to
        navigation_timeout_ms: Timeout for ``page.goto``
        network_idle_timeout_ms: Soft wait for network idle after load
        action_timeout_ms: Timeout for native clicks and key presses
    """

    def __init__(
        self,
        page: Page,
        navigation_timeout_ms: int = 30000,
        network_idle_timeout_ms: int = 5000,
        action_timeout_ms: int = 5000,
    ):
        super().__init__()
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms
        self.network_idle_timeout_ms = network_idle_timeout_ms
        self.action_timeout_ms = action_timeout_ms

    async def wrap(self, handle: JSHandle) -> Optional[PlaywrightElement]:
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            return None
        tag_name = await element.evaluate("el => el.tagName.toLowerCase()")
        return PlaywrightElement(self, element, tag_name)

    async def wrap_all(self, handle: JSHandle) -> list[PlaywrightElement]:
        properties = await handle.get_properties()
        elements = []
        for key in sorted(properties, key=lambda k: int(k) if k.isdigit() else -1):
            if not key.isdigit():
                continue
            wrapped = await self.wrap(properties[key])
            if wrapped is not None:
                elements.append(wrapped)
        await handle.dispose()
        return elements

    async def unpack_query(self, handle: JSHandle, selector: str) -> list[PlaywrightElement]:
        reason = await _invalid_reason(handle)
        if reason:
            await handle.dispose()
            raise InvalidSelectorError(selector, reason)
        return await self.wrap_all(handle)

    async def url(self) -> str:
        return self.page.url

    async def user_agent(self) -> str:
        return await self.page.evaluate("() => navigator.userAgent")

    async def viewport(self) -> tuple[int, int]:
        width, height = await self.page.evaluate("() => [window.innerWidth, window.innerHeight]")
        return int(width), int(height)

    async def scroll_position(self) -> tuple[int, int]:
        x, y = await self.page.evaluate("() => [window.scrollX, window.scrollY]")
        return int(x), int(y)

    async def scroll_to(self, x: int, y: int) -> None:
        await self.page.evaluate("([x, y]) => window.scrollTo(x, y)", [x, y])

    async def query_selector_all(self, selector: str) -> list[DomElement]:
        handle = await self.page.evaluate_handle(PAGE_QUERY_ALL_JS, selector)
        return await self.unpack_query(handle, selector)

    async def find_label_carriers(self, expected: str) -> list[DomElement]:
        handle = await self.page.evaluate_handle(LABEL_CARRIERS_JS, expected)
        return await self.wrap_all(handle)

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="load", timeout=self.navigation_timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(url, str(e)) from e
        try:
            await self.page.wait_for_load_state("networkidle", timeout=self.network_idle_timeout_ms)
        except PlaywrightTimeoutError:
            self.log.debug("Network did not go idle", url=url)

    async def wait_for_load(self) -> None:
        await self.page.wait_for_load_state("load")

    async def screenshot(self) -> bytes:
        return await self.page.screenshot()
