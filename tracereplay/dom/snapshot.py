"""Static DOM snapshot backed by BeautifulSoup.

There is no layout engine behind a snapshot, so geometry is explicit:
every element gets ``default_box`` unless a box was assigned with
:meth:`SnapshotDocument.set_box`, and elements hidden by the ``hidden``
attribute or inline ``display:none`` collapse to a zero box. Replay
primitives do not run scripts; they mutate field values and append to
:attr:`SnapshotDocument.actions` so callers can inspect what happened.
"""

import asyncio
import io
from dataclasses import dataclass, field
from typing import Any, Hashable, Optional, Union

import soupsieve
from bs4 import BeautifulSoup, Tag
from PIL import Image

from ..exceptions import InvalidSelectorError, NavigationError
from .base import Box, DomDocument, DomElement, label_matches, normalize_text

EDITABLE_VALUES = {"", "true", "plaintext-only"}


def _parse_style(style: Optional[str]) -> dict[str, str]:
    declarations = {}
    for part in (style or "").split(";"):
        if ":" not in part:
            continue
        prop, _, value = part.partition(":")
        declarations[prop.strip().lower()] = value.strip().lower()
    return declarations


@dataclass
class SnapshotAction:
    """A replay primitive applied to a snapshot element."""

    kind: str
    element: Optional["SnapshotElement"] = None
    details: dict[str, Any] = field(default_factory=dict)


class SnapshotElement(DomElement):
    """Element wrapper around a BeautifulSoup tag."""

    def __init__(self, document: "SnapshotDocument", tag: Tag):
        self._document = document
        self.tag = tag

    def __repr__(self) -> str:
        return f"<SnapshotElement {self.tag.name} {dict(self.tag.attrs)!r}>"

    @property
    def tag_name(self) -> str:
        return self.tag.name.lower()

    async def identity(self) -> Hashable:
        return id(self.tag)

    async def get_attribute(self, name: str) -> Optional[str]:
        value = self.tag.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    async def attributes(self) -> dict[str, str]:
        return {k: (" ".join(v) if isinstance(v, list) else v) for k, v in self.tag.attrs.items()}

    async def parent(self) -> Optional["SnapshotElement"]:
        parent = self.tag.parent
        if isinstance(parent, Tag) and not isinstance(parent, BeautifulSoup):
            return self._document.wrap(parent)
        return None

    async def children(self) -> list["SnapshotElement"]:
        return [self._document.wrap(c) for c in self.tag.children if isinstance(c, Tag)]

    async def closest(self, selector: str) -> Optional["SnapshotElement"]:
        found = self._document.compile(selector).closest(self.tag)
        return self._document.wrap(found) if found is not None else None

    async def matches(self, selector: str) -> bool:
        return self._document.compile(selector).match(self.tag)

    async def query_selector_all(self, selector: str) -> list["SnapshotElement"]:
        return [self._document.wrap(t) for t in self._document.compile(selector).select(self.tag)]

    async def text(self) -> str:
        return " ".join(self.tag.get_text(" ").split())

    async def value(self) -> str:
        key = id(self.tag)
        if key in self._document.values:
            return self._document.values[key]
        if await self.is_content_editable():
            return self.tag.get_text()
        if self.tag_name == "textarea":
            return self.tag.get_text()
        if self.tag_name == "input":
            return self.tag.get("value", "") or ""
        return ""

    def set_value(self, value: str) -> None:
        """Simulate the user editing the field."""
        self._document.values[id(self.tag)] = value

    async def is_content_editable(self) -> bool:
        node = self.tag
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            flag = node.get("contenteditable")
            if flag is not None:
                return str(flag).lower() in EDITABLE_VALUES
            node = node.parent
        return False

    def _hidden_by_style(self) -> bool:
        node = self.tag
        visibility = None
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            style = _parse_style(node.get("style"))
            if node.has_attr("hidden") or style.get("display") == "none":
                return True
            if visibility is None and "visibility" in style:
                visibility = style["visibility"]
            node = node.parent
        return visibility in ("hidden", "collapse")

    async def bounding_box(self) -> Optional[Box]:
        node = self.tag
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            if node.has_attr("hidden") or _parse_style(node.get("style")).get("display") == "none":
                return Box(0, 0, 0, 0)
            node = node.parent
        return self._document.boxes.get(id(self.tag), self._document.default_box)

    async def is_visible(self) -> bool:
        if self._hidden_by_style():
            return False
        box = await self.bounding_box()
        return box is not None and box.area > 0

    async def nth_of_type(self) -> tuple[int, int]:
        parent = self.tag.parent
        if parent is None:
            return 1, 1
        siblings = [c for c in parent.children if isinstance(c, Tag) and c.name == self.tag.name]
        position = next(i for i, s in enumerate(siblings, start=1) if s is self.tag)
        return position, len(siblings)

    async def scroll_into_view(self) -> None:
        self._document.record("scroll_into_view", self)

    async def click_at(self, x: int, y: int) -> None:
        self._document.record("click", self, x=x, y=y)

    async def activate(self) -> None:
        self._document.record("activate", self)

    async def focus(self) -> None:
        self._document.focused = self
        self._document.record("focus", self)

    async def insert_text(self, text: str, char_delay_ms: float = 0) -> None:
        for char in text:
            self.set_value(await self.value() + char)
            self._document.record("input", self, data=char)
            await asyncio.sleep(char_delay_ms / 1000)

    async def append_value(self, text: str) -> None:
        self.set_value(await self.value() + text)
        self._document.record("input", self, data=text)

    async def press_key(self, key: str) -> None:
        for phase in ("keydown", "keypress", "keyup"):
            self._document.record(phase, self, key=key)

    async def highlight(self, duration_ms: int = 300) -> None:
        self._document.record("highlight", self, duration_ms=duration_ms)


class SnapshotDocument(DomDocument):
    """In-memory document built from HTML.

    Args:
        html: Markup of the page
        url: Reported location of the page
        pages: Optional URL to markup map used by :meth:`navigate`
        viewport: Window inner size
        user_agent: Reported user agent string
    """

    def __init__(
        self,
        html: str,
        url: str = "about:blank",
        pages: Optional[dict[str, str]] = None,
        viewport: tuple[int, int] = (1280, 720),
        user_agent: str = "tracereplay-snapshot/1.0",
        default_box: Optional[Box] = None,
    ):
        super().__init__()
        self._url = url
        self._pages = dict(pages or {})
        self._viewport = viewport
        self._user_agent = user_agent
        self._scroll = (0, 0)
        self.default_box = default_box or Box(0, 0, 100, 20)
        self.actions: list[SnapshotAction] = []
        self.focused: Optional[SnapshotElement] = None
        self.load_html(html)

    def load_html(self, html: str) -> None:
        """Replace the DOM, dropping per-element state."""
        self.soup = BeautifulSoup(html, "html.parser", multi_valued_attributes=None)
        self.boxes: dict[int, Box] = {}
        self.values: dict[int, str] = {}
        self._wrappers: dict[int, SnapshotElement] = {}
        self.focused = None

    def wrap(self, tag: Tag) -> SnapshotElement:
        key = id(tag)
        if key not in self._wrappers:
            self._wrappers[key] = SnapshotElement(self, tag)
        return self._wrappers[key]

    def compile(self, selector: str):
        try:
            return soupsieve.compile(selector)
        except (soupsieve.SelectorSyntaxError, NotImplementedError, ValueError) as e:
            raise InvalidSelectorError(selector, str(e)) from e

    def record(self, kind: str, element: Optional[SnapshotElement] = None, **details) -> None:
        self.actions.append(SnapshotAction(kind=kind, element=element, details=details))

    def actions_of(self, kind: str) -> list[SnapshotAction]:
        return [a for a in self.actions if a.kind == kind]

    def element(self, selector: str) -> SnapshotElement:
        """Synchronous lookup for tests and setup code; raises if absent."""
        tag = self.compile(selector).select_one(self.soup)
        if tag is None:
            raise LookupError(f"No element matches {selector!r}")
        return self.wrap(tag)

    def set_box(self, target: Union[str, SnapshotElement], box: Box) -> None:
        element = self.element(target) if isinstance(target, str) else target
        self.boxes[id(element.tag)] = box

    def set_scroll(self, x: int, y: int) -> None:
        """Simulate the user scrolling the window."""
        self._scroll = (x, y)

    async def url(self) -> str:
        return self._url

    async def user_agent(self) -> str:
        return self._user_agent

    async def viewport(self) -> tuple[int, int]:
        return self._viewport

    async def scroll_position(self) -> tuple[int, int]:
        return self._scroll

    async def scroll_to(self, x: int, y: int) -> None:
        self._scroll = (x, y)
        self.record("scroll_to", x=x, y=y)

    async def query_selector_all(self, selector: str) -> list[DomElement]:
        return [self.wrap(t) for t in self.compile(selector).select(self.soup)]

    async def find_label_carriers(self, expected: str) -> list[DomElement]:
        labels: dict[int, str] = {}

        def label(tag: Tag) -> str:
            if id(tag) not in labels:
                labels[id(tag)] = normalize_text(tag.get("aria-label") or tag.get_text(" "))
            return labels[id(tag)]

        carriers = []
        for tag in self.soup.find_all(True):
            if not label_matches(label(tag), expected):
                continue
            if not tag.get("aria-label") and any(
                label_matches(label(child), expected) for child in tag.find_all(True, recursive=False)
            ):
                continue
            carriers.append(self.wrap(tag))
        return carriers

    async def navigate(self, url: str) -> None:
        self.record("navigate", url=url)
        if self._pages:
            if url not in self._pages:
                raise NavigationError(url, "page not found in snapshot set")
            self.load_html(self._pages[url])
        self._url = url
        self._scroll = (0, 0)

    async def wait_for_load(self) -> None:
        return None

    async def screenshot(self) -> bytes:
        width, height = self._viewport
        image = Image.new("RGB", (max(width, 1), max(height, 1)), "white")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()
