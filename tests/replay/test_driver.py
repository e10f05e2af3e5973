"""Tests for the standalone replay driver and browser manager."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from tracereplay.config import Settings
from tracereplay.exceptions import BrowserLaunchError
from tracereplay.recording.models import NavigateStep, Trace, TraceMeta, Viewport
from tracereplay.replay.driver import BrowserConfig, BrowserManager, ReplayDriver
from tracereplay.replay.orchestrator import FailurePolicy, ReplayResult, ReplayStatus


@pytest.fixture
def settings(tmp_path):
    return Settings(artifacts_dir=tmp_path / "artifacts")


def make_trace(width=0, height=0, user_agent=""):
    return Trace(
        meta=TraceMeta(user_agent=user_agent, viewport=Viewport(width=width, height=height)),
        steps=[NavigateStep(url="https://example.com")],
    )


# =============================================================================
# Configuration
# =============================================================================


class TestReplayDriverConfig:
    """Tests for driver option wiring."""

    def test_best_effort_options(self, settings):
        driver = ReplayDriver(settings=settings, respect_timing=True, speed=2.0, timeout_ms=750)

        assert driver.options.failure_policy is FailurePolicy.CONTINUE
        assert driver.options.skip_initial_navigate is False
        assert driver.options.element_timeout_ms == 750
        assert driver.options.respect_timing is True
        assert driver.options.speed == 2.0

    def test_default_timeout_from_settings(self, settings):
        assert ReplayDriver(settings=settings).options.element_timeout_ms == 2000

    def test_browser_config_uses_trace_viewport(self, settings):
        driver = ReplayDriver(settings=settings, headless=False)

        config = driver.browser_config(make_trace(800, 600))

        assert (config.viewport_width, config.viewport_height) == (800, 600)
        assert config.headless is False
        assert config.record_video_dir is None

    def test_browser_config_falls_back_to_settings(self, settings):
        driver = ReplayDriver(settings=settings, video=True, artifacts_dir=Path("/tmp/run"))

        config = driver.browser_config(make_trace())

        assert (config.viewport_width, config.viewport_height) == (1280, 720)
        assert config.record_video_dir == Path("/tmp/run/video")
        assert config.user_agent is None

    def test_browser_config_uses_recorded_user_agent(self, monkeypatch, settings):
        monkeypatch.setenv("TRACEREPLAY_SLOW_MO_MS", "250")
        driver = ReplayDriver(settings=Settings(artifacts_dir=settings.artifacts_dir))

        config = driver.browser_config(make_trace(user_agent="Mozilla/5.0 (X11) Recorder"))

        assert config.user_agent == "Mozilla/5.0 (X11) Recorder"
        assert config.slow_mo == 250


# =============================================================================
# Running
# =============================================================================


class TestReplayDriverRun:
    """Tests for a driver run with the browser mocked out."""

    @pytest.mark.asyncio
    async def test_run_replays_on_managed_page(self, settings):
        manager = MagicMock()
        manager.page = MagicMock()
        manager.__aenter__ = AsyncMock(return_value=manager)
        manager.__aexit__ = AsyncMock(return_value=None)
        expected = ReplayResult(status=ReplayStatus.COMPLETED, total_steps=1, completed_steps=1)

        with patch("tracereplay.replay.driver.BrowserManager", return_value=manager) as manager_cls, \
             patch("tracereplay.replay.driver.ReplayOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run = AsyncMock(return_value=expected)
            result = await ReplayDriver(settings=settings).run(make_trace(1024, 768))

        assert result is expected
        config = manager_cls.call_args.args[0]
        assert config.viewport_width == 1024
        kwargs = orchestrator_cls.call_args.kwargs
        assert kwargs["artifacts"].directory == settings.artifacts_dir
        assert kwargs["options"].failure_policy is FailurePolicy.CONTINUE
        manager.__aexit__.assert_awaited_once()


class TestBrowserManager:
    """Tests for browser lifecycle errors."""

    @pytest.mark.asyncio
    async def test_launch_failure_raises_browser_launch_error(self):
        playwright = MagicMock()
        playwright.start = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))

        with patch("playwright.async_api.async_playwright", return_value=playwright):
            with pytest.raises(BrowserLaunchError, match="Executable doesn't exist"):
                await BrowserManager(BrowserConfig()).start()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_safe(self):
        manager = BrowserManager()

        await manager.stop()

        assert manager.page is None

    @pytest.mark.asyncio
    async def test_start_applies_config_to_launch_and_context(self):
        page = MagicMock()
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)
        instance = MagicMock()
        instance.chromium.launch = AsyncMock(return_value=browser)
        playwright = MagicMock()
        playwright.start = AsyncMock(return_value=instance)
        config = BrowserConfig(slow_mo=100, user_agent="UA/1.0", viewport_width=800, viewport_height=600)

        with patch("playwright.async_api.async_playwright", return_value=playwright):
            manager = BrowserManager(config)
            await manager.start()

        assert instance.chromium.launch.await_args.kwargs["slow_mo"] == 100
        options = browser.new_context.await_args.kwargs
        assert options["user_agent"] == "UA/1.0"
        assert options["viewport"] == {"width": 800, "height": 600}
        assert manager.page is page
