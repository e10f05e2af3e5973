"""Standalone replay driver on a Playwright-controlled browser."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from ..config import Settings, get_settings
from ..exceptions import BrowserLaunchError
from ..recording.models import Trace
from .artifacts import ArtifactRecorder
from .orchestrator import FailurePolicy, ReplayOptions, ReplayOrchestrator, ReplayResult
from .status import StatusChannel

logger = structlog.get_logger()


@dataclass
class BrowserConfig:
    """Configuration for browser instances."""
    headless: bool = True
    slow_mo: int = 0  # Milliseconds between actions
    viewport_width: int = 1280
    viewport_height: int = 720
    timeout_ms: int = 30000
    ignore_https_errors: bool = True
    user_agent: Optional[str] = None
    record_video_dir: Optional[Path] = None


class BrowserManager:
    """
    Manages a Playwright browser instance.

    Handles browser lifecycle, context creation, and the single page a
    replay or recording session drives.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self.log = logger.bind(component="browser")

    async def start(self) -> None:
        """Start the browser."""
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import async_playwright

        self.log.info("Starting browser", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                slow_mo=self.config.slow_mo,
            )
            await self._create_context()
        except PlaywrightError as e:
            await self.stop()
            raise BrowserLaunchError(f"Could not start browser: {e}") from e

        self.log.info("Browser started")

    async def _create_context(self) -> None:
        """Create a new browser context."""
        options = dict(
            viewport={
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
            ignore_https_errors=self.config.ignore_https_errors,
            user_agent=self.config.user_agent,
        )
        if self.config.record_video_dir is not None:
            self.config.record_video_dir.mkdir(parents=True, exist_ok=True)
            options["record_video_dir"] = str(self.config.record_video_dir)
            options["record_video_size"] = options["viewport"]

        self._context = await self._browser.new_context(**options)
        self._context.set_default_timeout(self.config.timeout_ms)
        self._page = await self._context.new_page()

    @property
    def page(self):
        """Get the current page."""
        return self._page

    async def stop(self) -> None:
        """Stop the browser. Closing the context flushes any video."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self.log.info("Browser stopped")

    async def __aenter__(self) -> "BrowserManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


@asynccontextmanager
async def create_browser_context(config: Optional[BrowserConfig] = None):
    """
    Context manager for browser sessions.

    Usage:
        async with create_browser_context() as browser:
            document = PlaywrightDocument(browser.page)
    """
    manager = BrowserManager(config)
    try:
        await manager.start()
        yield manager
    finally:
        await manager.stop()


class ReplayDriver:
    """Replays a trace in a fresh browser with best-effort failure handling.

    Every step runs even if earlier ones fail; failures end up in the
    artifacts directory as an error log and screenshots.

    Example:
        driver = ReplayDriver(headless=False, respect_timing=True)
        result = await driver.run(load_trace("trace.json"))
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        headless: Optional[bool] = None,
        respect_timing: bool = False,
        speed: float = 1.0,
        timeout_ms: Optional[int] = None,
        video: bool = False,
        artifacts_dir: Optional[Path] = None,
        status: Optional[StatusChannel] = None,
    ):
        self.settings = settings or get_settings()
        self.headless = self.settings.headless if headless is None else headless
        self.video = video
        self.artifacts_dir = Path(artifacts_dir or self.settings.artifacts_dir)
        self.status = status or StatusChannel()
        overrides = {"respect_timing": respect_timing, "speed": speed}
        if timeout_ms is not None:
            overrides["element_timeout_ms"] = timeout_ms
        self.options = ReplayOptions.from_settings(self.settings, FailurePolicy.CONTINUE, **overrides)
        self.log = logger.bind(component="replay_driver")

    def browser_config(self, trace: Trace) -> BrowserConfig:
        viewport = trace.meta.viewport
        return BrowserConfig(
            headless=self.headless,
            slow_mo=self.settings.slow_mo_ms,
            user_agent=trace.meta.user_agent or None,
            viewport_width=viewport.width or self.settings.viewport_width,
            viewport_height=viewport.height or self.settings.viewport_height,
            timeout_ms=self.settings.navigation_timeout_ms,
            record_video_dir=self.artifacts_dir / "video" if self.video else None,
        )

    async def run(self, trace: Trace) -> ReplayResult:
        from ..dom.playwright_dom import PlaywrightDocument

        async with BrowserManager(self.browser_config(trace)) as browser:
            document = PlaywrightDocument(
                browser.page,
                navigation_timeout_ms=self.settings.navigation_timeout_ms,
                network_idle_timeout_ms=self.settings.network_idle_timeout_ms,
                action_timeout_ms=self.options.element_timeout_ms,
            )
            orchestrator = ReplayOrchestrator(
                document,
                options=self.options,
                status=self.status,
                artifacts=ArtifactRecorder(self.artifacts_dir),
            )
            result = await orchestrator.run(trace)
            await self.status.drain()

        self.log.info(
            "Replay finished",
            status=result.status.value,
            completed=result.completed_steps,
            failures=len(result.failures),
        )
        return result
