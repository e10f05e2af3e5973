"""Element resolution for replay.

Re-finds a recorded target on a page that may have re-rendered since the
trace was captured. Each cycle tries, in order:

1. Semantic match: role + accessible label inside visible menus/listboxes
2. Name-only match: accessible label anywhere in the document
3. Locator match: primary selector, then fallbacks (steps without hints only)

Cycles repeat at a fixed poll interval until a monotonic deadline.
"""

import asyncio
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Optional

import structlog

from ..dom.base import DomDocument, DomElement, label_matches, normalize_text
from ..exceptions import ElementNotFoundError, InvalidSelectorError
from ..recording.models import Step

logger = structlog.get_logger()

MENU_CONTAINERS = '[role="menu"],[role="listbox"]'
PORTAL_ROLES = "[data-radix-portal] [role], [data-portal] [role]"
SEMANTIC_CANDIDATES = '[role],[data-testid],button,[role="button"]'
CLICKABLE_TARGETS = '[role^="menuitem"],[role="option"],button,[role="button"],a[href]'

def canonical_role(role: Optional[str]) -> str:
    if not role:
        return ""
    if role == "option" or role.startswith("menuitem"):
        return "menuitem"
    return role


def roles_match(actual: Optional[str], expected: Optional[str]) -> bool:
    if not expected:
        return True
    return canonical_role(actual) == canonical_role(expected)


async def element_label(element: DomElement) -> str:
    """Normalized accessible label: aria-label, else rendered text."""
    aria_label = await element.get_attribute("aria-label")
    return normalize_text(aria_label or await element.text())


async def clickable_target(element: DomElement) -> DomElement:
    return await element.closest(CLICKABLE_TARGETS) or element


async def release(elements: Iterable[DomElement], keep: Optional[DomElement] = None) -> None:
    """Dispose every element except ``keep``."""
    for element in elements:
        if element is not keep:
            await element.dispose()


@dataclass
class Resolution:
    """A resolved element and how it was found."""

    element: DomElement
    strategy: str
    selector: Optional[str] = None


class ElementResolver:
    """Finds replay targets with semantic and locator strategies.

    Args:
        document: Page to search
        timeout_ms: Default deadline for one resolution
        poll_interval_ms: Pause between retry cycles
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        document: DomDocument,
        timeout_ms: int = 5000,
        poll_interval_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.document = document
        self.timeout_ms = timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self.clock = clock
        self.log = logger.bind(component="element_resolver")

    async def resolve_step(self, step: Step, timeout_ms: Optional[int] = None) -> DomElement:
        return await self.resolve(
            step.selectors,
            role=getattr(step, "role", None),
            name=getattr(step, "name", None),
            timeout_ms=timeout_ms,
        )

    async def resolve(
        self,
        selectors: Sequence[str],
        role: Optional[str] = None,
        name: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> DomElement:
        """Resolve to a visible element or raise ElementNotFoundError."""
        return (await self.find(selectors, role, name, timeout_ms)).element

    async def find(
        self,
        selectors: Sequence[str],
        role: Optional[str] = None,
        name: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Resolution:
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        selectors = [s for s in selectors if s]
        deadline = self.clock() + timeout_ms / 1000
        self.log.debug("Resolving element", selectors=selectors, role=role, name=name)

        while True:
            resolution = await self._attempt(selectors, role, name)
            if resolution is not None:
                self.log.debug(
                    "Element resolved",
                    strategy=resolution.strategy,
                    selector=resolution.selector,
                    tag=resolution.element.tag_name,
                )
                return resolution

            remaining = deadline - self.clock()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval_ms / 1000, remaining))

        raise ElementNotFoundError(selectors, role=role, name=name, timeout_ms=timeout_ms)

    async def _attempt(
        self, selectors: list[str], role: Optional[str], name: Optional[str]
    ) -> Optional[Resolution]:
        if name:
            element = await self.find_by_semantics(role, name)
            if element is not None:
                return Resolution(element, "semantic")
            element = await self.find_by_name(name)
            if element is not None:
                return Resolution(element, "name")
        if not role and not name:
            return await self.find_by_selectors(selectors)
        return None

    async def visible_scopes(self) -> list[DomElement]:
        """Visible menus and listboxes, including those inside portals."""
        scopes: list[DomElement] = []
        seen = set()

        async def add(element: DomElement) -> None:
            key = await element.identity()
            if key not in seen and await element.is_visible():
                seen.add(key)
                scopes.append(element)
            elif element not in scopes:
                await element.dispose()

        for container in await self.document.query_selector_all(MENU_CONTAINERS):
            await add(container)
        portal_elements = await self.document.query_selector_all(PORTAL_ROLES)
        for element in portal_elements:
            menu = await element.closest(MENU_CONTAINERS)
            if menu is not None:
                await add(menu)
        await release(e for e in portal_elements if e not in scopes)
        return scopes

    async def find_by_semantics(self, role: Optional[str], name: str) -> Optional[DomElement]:
        expected = normalize_text(name)
        scopes = await self.visible_scopes()
        searches = [s.query_selector_all for s in scopes] or [self.document.query_selector_all]

        found = None
        for search in searches:
            candidates = await search(SEMANTIC_CANDIDATES)
            for element in candidates:
                if not roles_match(await element.get_attribute("role"), role):
                    continue
                if not label_matches(await element_label(element), expected):
                    continue
                target = await clickable_target(element)
                if await target.is_visible():
                    found = target
                    break
                if target is not element:
                    await target.dispose()
            await release(candidates, keep=found)
            if found is not None:
                break
        await release(scopes, keep=found)
        return found

    async def find_by_name(self, name: str) -> Optional[DomElement]:
        """First innermost label carrier whose clickable target is visible.

        The label scan is one document call, so a cycle stays cheap on
        large live pages.
        """
        carriers = await self.document.find_label_carriers(normalize_text(name))
        found = None
        for element in carriers:
            target = await clickable_target(element)
            if await target.is_visible():
                found = target
                break
            if target is not element:
                await target.dispose()
        await release(carriers, keep=found)
        return found

    async def find_by_selectors(self, selectors: Sequence[str]) -> Optional[Resolution]:
        for selector in selectors:
            try:
                element = await self.document.query_selector(selector)
            except InvalidSelectorError as e:
                self.log.warning("Invalid selector skipped", selector=selector, reason=e.reason)
                continue
            if element is not None and await element.is_visible():
                return Resolution(await clickable_target(element), "selector", selector)
        return None

    async def wait_visible(self, selector: str, timeout_ms: int) -> bool:
        """Poll until ``selector`` matches a visible element; False on timeout."""
        deadline = self.clock() + timeout_ms / 1000
        while True:
            try:
                element = await self.document.query_selector(selector)
            except InvalidSelectorError as e:
                self.log.warning("Invalid selector in waitVisible", selector=selector, reason=e.reason)
                return False
            if element is not None and await element.is_visible():
                return True
            remaining = deadline - self.clock()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.poll_interval_ms / 1000, remaining))

    async def wait_for_menu(self, timeout_ms: int) -> bool:
        """Wait for any menu scope to become visible."""
        deadline = self.clock() + timeout_ms / 1000
        while True:
            scopes = await self.visible_scopes()
            await release(scopes)
            if scopes:
                return True
            remaining = deadline - self.clock()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.poll_interval_ms / 1000, remaining))
