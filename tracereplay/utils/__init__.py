"""Shared utilities."""

from .logging import ReplayLogger, configure_logging, get_logger, log_operation

__all__ = [
    "ReplayLogger",
    "configure_logging",
    "get_logger",
    "log_operation",
]
