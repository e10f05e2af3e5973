"""Shared fixtures for tracereplay tests."""

import pytest

from tracereplay.dom import SnapshotDocument
from tracereplay.recording.capture import CaptureOptions
from tracereplay.replay.orchestrator import FailurePolicy, ReplayOptions


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def capture_options():
    """Capture options with short debounce windows."""
    return CaptureOptions(typing_flush_ms=20, scroll_debounce_ms=20)


@pytest.fixture
def replay_options():
    """Fast fail-fast replay options."""
    return ReplayOptions(
        failure_policy=FailurePolicy.FAIL_FAST,
        element_timeout_ms=50,
        poll_interval_ms=10,
        scroll_into_view_delay_ms=0,
        highlight_ms=0,
        type_char_delay_ms=0,
    )


@pytest.fixture
def driver_options():
    """Fast best-effort replay options."""
    return ReplayOptions(
        failure_policy=FailurePolicy.CONTINUE,
        skip_initial_navigate=False,
        element_timeout_ms=50,
        poll_interval_ms=10,
        scroll_into_view_delay_ms=0,
        highlight_ms=0,
        type_char_delay_ms=0,
    )


FORM_PAGE = """
<html>
  <body>
    <form>
      <input id="box" type="text">
      <button id="submit">Send</button>
    </form>
  </body>
</html>
"""


@pytest.fixture
def form_page():
    return SnapshotDocument(FORM_PAGE, url="https://example.com")
