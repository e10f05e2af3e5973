"""Error taxonomy for trace capture and replay."""

from typing import Optional, Sequence


class TraceReplayError(Exception):
    """Base class for all tracereplay errors."""


class TraceValidationError(TraceReplayError):
    """Trace is malformed or uses an unsupported schema version."""


class TraceLoadError(TraceReplayError):
    """Trace file is missing or is not parseable JSON."""


class ElementNotFoundError(TraceReplayError):
    """Every resolution strategy was exhausted before the deadline."""

    def __init__(
        self,
        selectors: Sequence[str],
        role: Optional[str] = None,
        name: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ):
        self.selectors = list(selectors)
        self.role = role
        self.name = name
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Element not found after {timeout_ms}ms: "
            f"selectors={self.selectors!r}, role={role!r}, name={name!r}"
        )


class NavigationError(TraceReplayError):
    """Navigating to a recorded URL failed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}")


class InvalidSelectorError(TraceReplayError):
    """Selector string could not be parsed."""

    def __init__(self, selector: str, reason: str = ""):
        self.selector = selector
        self.reason = reason
        message = f"Invalid selector: {selector!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InternalCaptureError(TraceReplayError):
    """A single capture listener failed; the session keeps recording."""

    def __init__(self, handler: str, cause: BaseException):
        self.handler = handler
        self.cause = cause
        super().__init__(f"Capture handler {handler!r} failed: {cause}")


class SessionError(TraceReplayError):
    """Session message could not be handled."""


class BrowserLaunchError(TraceReplayError):
    """The automation browser could not be started."""
