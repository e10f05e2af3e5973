"""Session plumbing: mailbox, controller and persistent session state."""

from .mailbox import (
    MessageType,
    SessionController,
    SessionMailbox,
    SessionMessage,
    SessionResponse,
)
from .store import SessionStateStore

__all__ = [
    "MessageType",
    "SessionController",
    "SessionMailbox",
    "SessionMessage",
    "SessionResponse",
    "SessionStateStore",
]
