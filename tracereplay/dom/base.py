"""DOM access abstraction.

Capture, selector building and replay only ever talk to these interfaces,
which lets the same algorithms run against a live Playwright page or a
static HTML snapshot:

                      ┌─────────────────────────────┐
                      │  DomDocument / DomElement   │
                      │     (Abstract Interface)    │
                      └─────────────┬───────────────┘
                                    │
                  ┌─────────────────┴─────────────────┐
                  ▼                                   ▼
        ┌───────────────────┐               ┌───────────────────┐
        │ PlaywrightDocument│               │ SnapshotDocument  │
        │  (live browser)   │               │ (BeautifulSoup)   │
        └───────────────────┘               └───────────────────┘
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Optional

import structlog

logger = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", text or "").strip().lower()


def label_matches(label: str, expected: str) -> bool:
    """Labels match when equal or when the label contains the expected name."""
    return bool(label) and (label == expected or expected in label)


class EventKind(str, Enum):
    """DOM events the capture engine listens for."""

    POINTER_DOWN = "pointerdown"
    CLICK = "click"
    INPUT = "input"
    BLUR = "blur"
    KEY_DOWN = "keydown"
    SCROLL = "scroll"


@dataclass
class Box:
    """Bounding client rect of an element."""

    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass
class CaptureEvent:
    """A DOM event as delivered to capture listeners.

    ``data`` is the text an input event reports as inserted (``None`` when
    the browser did not report it, e.g. for paste or autofill).
    """

    kind: EventKind
    target: Optional["DomElement"] = None
    client_x: float = 0.0
    client_y: float = 0.0
    data: Optional[str] = None
    key: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[CaptureEvent], Awaitable[None]]


class DomElement(ABC):
    """A single element of a document."""

    @property
    @abstractmethod
    def tag_name(self) -> str:
        """Lowercase tag name."""

    @abstractmethod
    async def identity(self) -> Hashable:
        """Stable key for this element within the current page."""

    @abstractmethod
    async def get_attribute(self, name: str) -> Optional[str]:
        pass

    @abstractmethod
    async def attributes(self) -> dict[str, str]:
        """All attributes in document order."""

    @abstractmethod
    async def parent(self) -> Optional["DomElement"]:
        """Parent element, or ``None`` at the document root."""

    @abstractmethod
    async def children(self) -> list["DomElement"]:
        pass

    @abstractmethod
    async def closest(self, selector: str) -> Optional["DomElement"]:
        """Nearest inclusive ancestor matching ``selector``."""

    @abstractmethod
    async def matches(self, selector: str) -> bool:
        pass

    @abstractmethod
    async def query_selector_all(self, selector: str) -> list["DomElement"]:
        """Descendants matching ``selector``."""

    async def query_selector(self, selector: str) -> Optional["DomElement"]:
        found = await self.query_selector_all(selector)
        return found[0] if found else None

    @abstractmethod
    async def text(self) -> str:
        """Rendered text content."""

    @abstractmethod
    async def value(self) -> str:
        """Form value, or rendered text for contenteditable regions."""

    @abstractmethod
    async def is_content_editable(self) -> bool:
        pass

    @abstractmethod
    async def bounding_box(self) -> Optional[Box]:
        pass

    @abstractmethod
    async def is_visible(self) -> bool:
        """Not hidden by computed style and with non-zero box area."""

    @abstractmethod
    async def nth_of_type(self) -> tuple[int, int]:
        """1-based position among same-tag siblings, and their count."""

    # Replay primitives

    @abstractmethod
    async def scroll_into_view(self) -> None:
        pass

    @abstractmethod
    async def click_at(self, x: int, y: int) -> None:
        """Dispatch pointerdown/mousedown/mouseup/click at a box-relative point."""

    @abstractmethod
    async def activate(self) -> None:
        """Plain click without coordinates."""

    @abstractmethod
    async def focus(self) -> None:
        pass

    @abstractmethod
    async def insert_text(self, text: str, char_delay_ms: float = 0) -> None:
        """Insert text character by character with an input event for each."""

    @abstractmethod
    async def append_value(self, text: str) -> None:
        """Append to a form field's value and fire a single input event."""

    @abstractmethod
    async def press_key(self, key: str) -> None:
        """Dispatch keydown, keypress and keyup for ``key``."""

    async def highlight(self, duration_ms: int = 300) -> None:
        """Briefly outline the element. No-op where there is nothing to draw on."""

    async def dispose(self) -> None:
        """Release whatever keeps the element alive on the page side."""


class DomDocument(ABC):
    """A page: element queries, window state, and capture listeners."""

    def __init__(self) -> None:
        self._listeners: dict[EventKind, list[Listener]] = {}
        self.log = logger.bind(component=type(self).__name__)

    @abstractmethod
    async def url(self) -> str:
        pass

    @abstractmethod
    async def user_agent(self) -> str:
        pass

    @abstractmethod
    async def viewport(self) -> tuple[int, int]:
        """Inner width and height of the window."""

    @abstractmethod
    async def scroll_position(self) -> tuple[int, int]:
        pass

    @abstractmethod
    async def scroll_to(self, x: int, y: int) -> None:
        pass

    @abstractmethod
    async def query_selector_all(self, selector: str) -> list[DomElement]:
        """All elements matching ``selector``; raises InvalidSelectorError."""

    async def query_selector(self, selector: str) -> Optional[DomElement]:
        found = await self.query_selector_all(selector)
        return found[0] if found else None

    @abstractmethod
    async def find_label_carriers(self, expected: str) -> list[DomElement]:
        """Innermost elements whose accessible label matches ``expected``.

        The label is aria-label, else rendered text, normalized with
        :func:`normalize_text`; ``expected`` must already be normalized.
        A text label includes every descendant's text, so an element
        without aria-label is skipped when one of its children matches too.
        Results are in document order.
        """

    @abstractmethod
    async def navigate(self, url: str) -> None:
        """Load ``url`` and wait for it; raises NavigationError."""

    @abstractmethod
    async def wait_for_load(self) -> None:
        pass

    @abstractmethod
    async def screenshot(self) -> bytes:
        """PNG image of the current viewport."""

    # Listener registry

    def add_listener(self, kind: EventKind, listener: Listener) -> None:
        self._listeners.setdefault(kind, []).append(listener)

    def remove_listener(self, kind: EventKind, listener: Listener) -> None:
        listeners = self._listeners.get(kind, [])
        if listener in listeners:
            listeners.remove(listener)

    def has_listeners(self) -> bool:
        return any(self._listeners.values())

    async def dispatch(self, event: CaptureEvent) -> None:
        """Deliver ``event`` to its listeners, one after another."""
        for listener in list(self._listeners.get(event.kind, [])):
            await listener(event)
