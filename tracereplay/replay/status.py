"""Replay status notifications.

Observers subscribe to a channel and receive ``started``, ``step``, ``done``
and ``error`` events. Delivery is fire-and-forget. Sync observers run
inline and async ones are scheduled as tasks, so a slow observer never
holds up replay. An observer that raises is logged and the replay carries on.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import Enum
from functools import partial
from typing import Any, Optional, Union

import structlog

logger = structlog.get_logger()


class StatusKind(str, Enum):
    STARTED = "started"
    STEP = "step"
    DONE = "done"
    ERROR = "error"


@dataclass
class StatusEvent:
    """One replay status notification."""

    status: StatusKind
    index: Optional[int] = None
    step_type: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def started(cls) -> "StatusEvent":
        return cls(StatusKind.STARTED)

    @classmethod
    def step(cls, index: int, step_type: str) -> "StatusEvent":
        return cls(StatusKind.STEP, index=index, step_type=step_type)

    @classmethod
    def done(cls) -> "StatusEvent":
        return cls(StatusKind.DONE)

    @classmethod
    def error(cls, message: str, index: Optional[int] = None) -> "StatusEvent":
        return cls(StatusKind.ERROR, index=index, message=message)

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["status"] = self.status.value
        return data


Observer = Callable[[StatusEvent], Union[None, Awaitable[None]]]


class StatusChannel:
    """Fan-out of status events to subscribed observers."""

    def __init__(self) -> None:
        self._observers: list[Observer] = []
        self._pending: set[asyncio.Future] = set()
        self.log = logger.bind(component="status_channel")

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer``; returns a callable that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def emit(self, event: StatusEvent) -> None:
        for observer in list(self._observers):
            try:
                result = observer(event)
            except Exception as e:
                self.log.warning("Status observer failed", status=event.status.value, error=str(e))
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(partial(self._delivered, event))

    def _delivered(self, event: StatusEvent, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.log.warning(
                "Status observer failed", status=event.status.value, error=str(task.exception())
            )

    async def drain(self) -> None:
        """Wait for scheduled async observers to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
