"""Configuration management for trace capture and replay."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_TRACE_VERSION = 1


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TRACEREPLAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field("INFO", description="Root log level")
    log_json: bool = Field(False, description="Render logs as JSON lines")

    # Capture timing
    typing_flush_ms: int = Field(200, description="Idle time before a typing buffer is flushed")
    scroll_debounce_ms: int = Field(120, description="Quiet period before a scroll step is emitted")
    click_dedupe_ms: int = Field(250, description="Window after pointerdown that swallows the click event")
    merge_type_gap_s: float = Field(1.0, description="Max gap for merging consecutive type steps")
    max_selector_depth: int = Field(4, description="Levels walked when building a structural path")
    menu_assert_timeout_ms: int = Field(3000, description="Timeout for synthetic menu assertions")
    primary_input_selector: str = Field(
        "#prompt-textarea",
        description="Real input that placeholder overlays are retargeted to",
    )

    # Replay timing
    element_timeout_ms: int = Field(5000, description="Element wait timeout for the in-page engine")
    driver_timeout_ms: int = Field(2000, description="Element wait timeout for the standalone driver")
    poll_interval_ms: int = Field(100, description="Resolver retry interval")
    wait_visible_default_ms: int = Field(5000, description="waitVisible timeout when a step has none")
    menu_wait_timeout_ms: int = Field(3000, description="Wait for a menu after clicking a menu trigger")
    menu_trigger_markers: list[str] = Field(
        default_factory=lambda: ["composer-plus-btn"],
        description="Selector fragments identifying buttons that open menus",
    )
    scroll_into_view_delay_ms: int = Field(20, description="Settle time after scrolling a target into view")
    highlight_ms: int = Field(200, description="How long a target is flashed before acting (0 disables)")
    type_char_delay_ms: int = Field(30, description="Per-character delay for rich-text typing at speed 1.0")
    navigation_timeout_ms: int = Field(30000, description="Page load timeout for real navigations")
    network_idle_timeout_ms: int = Field(5000, description="Soft wait for network idle after navigation")

    # Browser
    headless: bool = Field(True, description="Run the standalone driver headless")
    slow_mo_ms: int = Field(0, description="Delay Playwright adds between browser operations")
    viewport_width: int = Field(1280, description="Viewport width when the trace has none")
    viewport_height: int = Field(720, description="Viewport height when the trace has none")

    # Paths
    artifacts_dir: Path = Field(Path("./artifacts"), description="Directory for diagnostic artifacts")
    traces_dir: Path = Field(Path("./traces"), description="Directory exported traces are written to")
    state_file: Path = Field(
        Path("./.tracereplay/state.json"),
        description="Session-keyed persistent state",
    )

    # Messaging
    message_timeout_s: float = Field(10.0, description="Default session mailbox request timeout")


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
