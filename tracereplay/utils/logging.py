"""Structured logging configuration for trace capture and replay.

Provides:
- Structured logging with structlog
- Scoped context for a replay run
- A logger specialized for step-by-step replay tracking
"""

import logging
import sys
from contextlib import contextmanager
from typing import Optional

import structlog


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    include_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Output logs as JSON
        include_timestamp: Include timestamps in logs
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
        force=True,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso") if include_timestamp else structlog.processors.TimeStamper(fmt=None),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None, **context) -> structlog.BoundLogger:
    """Get a configured logger with optional context.

    Args:
        name: Logger name
        **context: Additional context to bind

    Returns:
        Configured structlog logger
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


@contextmanager
def log_operation(
    operation: str,
    logger: Optional[structlog.BoundLogger] = None,
    **context,
):
    """Context manager for logging operation start/end.

    Binds the context to every log line emitted inside the block, so
    nested components inherit e.g. the trace path of a replay run.

    Example:
        with log_operation("replay", trace="login.json") as op:
            result = await driver.run(trace)
            op["failures"] = len(result.failures)
    """
    log = logger or get_logger()
    log = log.bind(operation=operation, **context)
    structlog.contextvars.bind_contextvars(operation=operation, **context)

    log.info(f"{operation} started")
    result = {"success": False, "error": None}

    try:
        yield result
        result["success"] = True
        log.info(f"{operation} completed", **result)
    except Exception as e:
        result["error"] = str(e)
        log.error(f"{operation} failed", **result)
        raise
    finally:
        structlog.contextvars.unbind_contextvars("operation", *context.keys())


class ReplayLogger:
    """Logger specialized for replay tracking.

    Keeps per-run counters so the completion line summarizes
    how many steps ran and how many failed.
    """

    def __init__(self, engine: str, step_count: int):
        self.log = get_logger().bind(engine=engine, step_count=step_count)
        self.steps_executed = 0
        self.steps_failed = 0

    def run_started(self, **metadata) -> None:
        self.log.info("Replay started", **metadata)

    def run_completed(self, status: str) -> None:
        self.log.info(
            "Replay completed",
            status=status,
            steps_executed=self.steps_executed,
            steps_failed=self.steps_failed,
        )

    def step_started(self, index: int, step_type: str, target: Optional[str] = None) -> None:
        self.log.debug("Step started", index=index, step_type=step_type, target=target)

    def step_completed(self, index: int, step_type: str, duration_ms: int) -> None:
        self.steps_executed += 1
        self.log.debug("Step completed", index=index, step_type=step_type, duration_ms=duration_ms)

    def step_failed(self, index: int, step_type: str, error: str) -> None:
        self.steps_failed += 1
        self.log.error("Step failed", index=index, step_type=step_type, error=error)

    def wait_timed_out(self, index: int, selector: str, timeout_ms: int) -> None:
        self.log.warning("waitVisible timed out", index=index, selector=selector, timeout_ms=timeout_ms)
