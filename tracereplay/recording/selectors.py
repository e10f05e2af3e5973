"""Robust selector builder for recorded elements.

Derives a locator that is unique now and likely to survive re-renders.
Signals are tried in a fixed order of stability, first unique hit wins:

1. role + aria-label (menuitem, button, option only)
2. data-* attributes, test-id-like names first
3. aria-* attributes, alone and with role
4. the element id, when it does not look auto-generated
5. a short tag/class/nth-of-type ancestor path
"""

import re
from dataclasses import dataclass, field
from typing import Hashable, Optional

import structlog

from ..dom.base import DomDocument, DomElement
from ..exceptions import InvalidSelectorError

logger = structlog.get_logger()

ROLE_LABEL_ROLES = ("menuitem", "button", "option")

PREFERRED_DATA_ATTRIBUTES = (
    "data-testid",
    "data-test-id",
    "data-test",
    "data-qa",
    "data-cy",
)

ARIA_ATTRIBUTES = (
    "aria-label",
    "aria-controls",
    "aria-haspopup",
    "aria-expanded",
    "aria-selected",
    "aria-current",
)

# Attributes owned by the recorder or by replay instrumentation
IGNORED_DATA_ATTRIBUTES = ("data-recorder-ui",)

STABLE_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_ID_LENGTH = 24
MAX_ID_DIGIT_RATIO = 0.35

GENERATED_ID_PATTERNS = (
    re.compile(r"(?=[0-9a-f]*\d)[0-9a-f]{6,}", re.IGNORECASE),  # hex-like runs with a digit
    re.compile(r"^(radix-|headlessui-|mui-|react-select-|ember|ext-gen|yui_|rc_|cdk-|mat-|:r)"),
    re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)"),  # mixed case with digits
    re.compile(r"\d{4,}"),
)

STABLE_CLASS_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{2,23}$")
MAX_CLASSES = 2

UTILITY_CLASS_PATTERNS = (
    re.compile(r"^(p|m|px|py|pt|pb|pl|pr|mx|my|mt|mb|ml|mr|w|h|gap|space-[xy]|min-w|max-w|min-h|max-h)-"),
    re.compile(r"^(flex|grid|text|bg|border|rounded|shadow|font|leading|tracking|z|top|left|right|bottom)-"),
    re.compile(r"^(css|sc|jsx|emotion|styled)-"),  # CSS-in-JS
    re.compile(r"(?=[0-9a-f]*\d)[0-9a-f]{5,}", re.IGNORECASE),
    re.compile(r"__[A-Za-z0-9]{5}$"),  # CSS modules hash suffix
)


def quote_attr(value: str) -> str:
    """Quote a string for use as a CSS attribute value."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def css_escape_ident(value: str) -> str:
    """Escape an identifier the way ``CSS.escape`` does for ids and classes."""
    out = []
    for i, ch in enumerate(value):
        if ch.isalnum() and ch.isascii() or ch in "-_" or ord(ch) >= 0x80:
            if i == 0 and ch.isdigit():
                out.append(f"\\{ord(ch):x} ")
            elif i == 1 and ch.isdigit() and value[0] == "-":
                out.append(f"\\{ord(ch):x} ")
            else:
                out.append(ch)
        else:
            out.append(f"\\{ch}")
    if value == "-":
        return "\\-"
    return "".join(out)


def attr_selector(name: str, value: str, tag: str = "", role: Optional[str] = None) -> str:
    parts = [tag]
    if role:
        parts.append(f"[role={quote_attr(role)}]")
    parts.append(f"[{name}={quote_attr(value)}]")
    return "".join(parts)


def is_stable_id(element_id: Optional[str]) -> bool:
    """Heuristic for ids that were written by a human rather than a framework."""
    if not element_id or len(element_id) > MAX_ID_LENGTH:
        return False
    if not STABLE_ID_RE.match(element_id):
        return False
    if any(p.search(element_id) for p in GENERATED_ID_PATTERNS):
        return False
    digits = sum(ch.isdigit() for ch in element_id)
    return digits / len(element_id) <= MAX_ID_DIGIT_RATIO


def is_stable_class(name: str) -> bool:
    if not STABLE_CLASS_RE.match(name):
        return False
    return not any(p.search(name) for p in UTILITY_CLASS_PATTERNS)


@dataclass
class Fingerprint:
    """Primary selector plus ordered fallbacks for one element."""

    primary: str
    fallbacks: list[str] = field(default_factory=list)
    strategy: str = ""

    @property
    def structural(self) -> bool:
        return self.strategy == "structural"


class SelectorBuilder:
    """Builds and caches fingerprints for elements of one document.

    Example:
        builder = SelectorBuilder(document)
        selector = await builder.build_selector(element)
        fingerprint = await builder.fingerprint(element)
    """

    def __init__(self, document: DomDocument, max_depth: int = 4):
        self.document = document
        self.max_depth = max_depth
        self._cache: dict[Hashable, Fingerprint] = {}
        self.log = logger.bind(component="selector_builder")

    def clear(self) -> None:
        """Forget every cached fingerprint (end of session)."""
        self._cache.clear()

    async def build_selector(self, element: Optional[DomElement]) -> str:
        """Primary selector for ``element``; never raises."""
        if element is None:
            return ""
        return (await self.fingerprint(element)).primary

    async def fingerprint(self, element: Optional[DomElement]) -> Fingerprint:
        if element is None:
            return Fingerprint(primary="", strategy="invalid")
        try:
            key = await element.identity()
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            fingerprint = await self._compute(element)
            self._cache[key] = fingerprint
            return fingerprint
        except Exception as e:
            self.log.warning("Selector build failed", tag=element.tag_name, error=str(e))
            return Fingerprint(primary=element.tag_name, strategy="tag")

    async def _compute(self, element: DomElement) -> Fingerprint:
        candidates: list[tuple[str, str]] = []
        for strategy, producer in (
            ("role_label", self._role_label_candidates),
            ("data", self._data_candidates),
            ("aria", self._aria_candidates),
            ("id", self._id_candidates),
        ):
            for selector in await producer(element):
                if await self.is_unique(selector, element):
                    candidates.append((strategy, selector))
                    break

        if candidates:
            strategy, primary = candidates[0]
            fallbacks = [s for _, s in candidates[1:] if s != primary]
            return Fingerprint(primary=primary, fallbacks=fallbacks, strategy=strategy)

        return Fingerprint(primary=await self.structural_path(element), strategy="structural")

    async def is_unique(self, selector: str, element: DomElement) -> bool:
        """True when ``selector`` matches exactly ``element`` and nothing else."""
        try:
            matches = await self.document.query_selector_all(selector)
        except InvalidSelectorError:
            self.log.debug("Candidate selector rejected", selector=selector)
            return False
        if len(matches) != 1:
            return False
        return await matches[0].identity() == await element.identity()

    async def _role_label_candidates(self, element: DomElement) -> list[str]:
        role = await element.get_attribute("role")
        label = await element.get_attribute("aria-label")
        if role not in ROLE_LABEL_ROLES or not label:
            return []
        return [attr_selector("aria-label", label, tag=element.tag_name, role=role)]

    async def _data_candidates(self, element: DomElement) -> list[str]:
        attributes = await element.attributes()
        selectors = []
        for name in PREFERRED_DATA_ATTRIBUTES:
            if attributes.get(name):
                selectors.append(attr_selector(name, attributes[name]))
        for name, value in attributes.items():
            if (
                name.startswith("data-")
                and name not in PREFERRED_DATA_ATTRIBUTES
                and name not in IGNORED_DATA_ATTRIBUTES
                and value
            ):
                selectors.append(attr_selector(name, value))
        return selectors

    async def _aria_candidates(self, element: DomElement) -> list[str]:
        role = await element.get_attribute("role")
        selectors = []
        for name in ARIA_ATTRIBUTES:
            value = await element.get_attribute(name)
            if not value:
                continue
            selectors.append(attr_selector(name, value))
            if role:
                selectors.append(attr_selector(name, value, role=role))
        return selectors

    async def _id_candidates(self, element: DomElement) -> list[str]:
        element_id = await element.get_attribute("id")
        if not is_stable_id(element_id):
            return []
        return [f"#{css_escape_ident(element_id)}"]

    async def _segment(self, element: DomElement) -> str:
        segment = element.tag_name
        classes = [c for c in ((await element.get_attribute("class")) or "").split() if is_stable_class(c)]
        for name in classes[:MAX_CLASSES]:
            segment += f".{css_escape_ident(name)}"
        position, count = await element.nth_of_type()
        if count > 1:
            segment += f":nth-of-type({position})"
        return segment

    async def structural_path(self, element: DomElement) -> str:
        """Shortest unique ancestor chain, or the full ``max_depth`` chain."""
        parts: list[str] = []
        current: Optional[DomElement] = element
        for _ in range(self.max_depth):
            if current is None:
                break
            parts.insert(0, await self._segment(current))
            path = " > ".join(parts)
            if await self.is_unique(path, element):
                return path
            current = await current.parent()
        return " > ".join(parts)
