"""Tests for logging utilities."""

import pytest
import structlog


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_default(self):
        """Test default logging configuration."""
        from tracereplay.utils.logging import configure_logging

        configure_logging()

    def test_configure_logging_json(self):
        """Test JSON logging configuration."""
        from tracereplay.utils.logging import configure_logging

        configure_logging(level="DEBUG", json_format=True, include_timestamp=False)


class TestLogOperation:
    """Tests for log_operation context manager."""

    def test_success_marks_result(self):
        from tracereplay.utils.logging import log_operation

        with log_operation("replay", trace="a.json") as result:
            assert structlog.contextvars.get_contextvars()["trace"] == "a.json"

        assert result["success"] is True
        assert "trace" not in structlog.contextvars.get_contextvars()

    def test_failure_reraises_and_unbinds(self):
        from tracereplay.utils.logging import log_operation

        with pytest.raises(ValueError):
            with log_operation("replay", trace="b.json") as result:
                raise ValueError("boom")

        assert result["error"] == "boom"
        assert "operation" not in structlog.contextvars.get_contextvars()


class TestReplayLogger:
    """Tests for ReplayLogger counters."""

    def test_counters(self):
        from tracereplay.utils.logging import ReplayLogger

        replay_log = ReplayLogger("continue", step_count=3)
        replay_log.run_started(respect_timing=False)
        replay_log.step_started(0, "navigate", target="https://example.com")
        replay_log.step_completed(0, "navigate", duration_ms=12)
        replay_log.step_failed(1, "click", "not found")
        replay_log.wait_timed_out(2, "#never", 30)
        replay_log.run_completed("completed_with_failures")

        assert replay_log.steps_executed == 1
        assert replay_log.steps_failed == 1

    def test_get_logger_binds_context(self):
        from tracereplay.utils.logging import get_logger

        assert get_logger("x", component="test") is not None
