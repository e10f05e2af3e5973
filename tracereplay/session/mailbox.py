"""Session mailbox: correlated request/response messaging.

Clients (the recording CLI, a UI, tests) talk to a session through a
mailbox instead of calling the capture engine directly:

    client --SessionMessage--> queue --> actor --> SessionController
    client <--SessionResponse-- future (matched by request_id)

Every request carries a timeout; a request the actor never answers
resolves to ``success=False, error="no response"``, and if it is still
queued at that point the actor drops it unexecuted.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

import structlog

from ..dom.base import DomDocument
from ..exceptions import SessionError, TraceReplayError
from ..recording.capture import CaptureEngine
from ..recording.export import TraceExporter
from ..recording.validator import parse_trace
from ..replay.orchestrator import FailurePolicy, ReplayOptions, ReplayOrchestrator
from ..replay.status import StatusChannel, StatusEvent
from .store import SessionStateStore

logger = structlog.get_logger()

NO_RESPONSE = "no response"


class MessageType(str, Enum):
    PING = "PING"
    REC_START = "REC_START"
    REC_STOP = "REC_STOP"
    REC_DUMP = "REC_DUMP"
    REC_QUERY_STATE = "REC_QUERY_STATE"
    RUN_TRACE = "RUN_TRACE"


@dataclass
class SessionMessage:
    """Request sent to a session."""

    type: str
    session_id: str = "default"
    payload: dict = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class SessionResponse:
    """Reply to a SessionMessage."""

    request_id: str
    success: bool
    data: Any = None
    error: Optional[str] = None


Handler = Callable[[SessionMessage], Awaitable[Any]]


class SessionMailbox:
    """Single-consumer actor serving session messages in arrival order.

    Example:
        mailbox = SessionMailbox(controller.handle)
        await mailbox.start()
        response = await mailbox.request(SessionMessage(type="REC_START"))
    """

    def __init__(self, handler: Handler, timeout_s: float = 10.0):
        self.handler = handler
        self.timeout_s = timeout_s
        self._queue: asyncio.Queue[SessionMessage] = asyncio.Queue()
        self._pending_requests: dict[str, asyncio.Future] = {}
        self._task: Optional[asyncio.Task] = None
        self.log = logger.bind(component="session_mailbox")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._serve())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        for request_id, future in self._pending_requests.items():
            if not future.done():
                future.set_result(SessionResponse(request_id=request_id, success=False, error=NO_RESPONSE))
        self._pending_requests.clear()

    async def request(self, message: SessionMessage, timeout: Optional[float] = None) -> SessionResponse:
        """Send ``message`` and wait for its correlated response."""
        timeout = self.timeout_s if timeout is None else timeout
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[message.request_id] = future
        await self._queue.put(message)

        try:
            return await asyncio.wait_for(future, timeout)
        except TimeoutError:
            self._pending_requests.pop(message.request_id, None)
            self.log.warning("Session request unanswered", type=message.type, timeout_s=timeout)
            return SessionResponse(request_id=message.request_id, success=False, error=NO_RESPONSE)

    async def _serve(self) -> None:
        while True:
            message = await self._queue.get()
            waiting = self._pending_requests.get(message.request_id)
            if waiting is None or waiting.done():
                # Requester timed out while the message was queued
                self._pending_requests.pop(message.request_id, None)
                self.log.info("Skipping abandoned session message", type=message.type)
                continue
            response = await self._dispatch(message)
            future = self._pending_requests.pop(message.request_id, None)
            if future is not None and not future.done():
                future.set_result(response)

    async def _dispatch(self, message: SessionMessage) -> SessionResponse:
        try:
            data = await self.handler(message)
            return SessionResponse(request_id=message.request_id, success=True, data=data)
        except Exception as e:
            self.log.warning("Session message failed", type=message.type, error=str(e))
            return SessionResponse(request_id=message.request_id, success=False, error=str(e))


class SessionController:
    """Handles session messages for one document.

    Owns the capture engine for the session, persists the recording flag,
    exports traces on REC_DUMP and starts in-page replays on RUN_TRACE.
    """

    def __init__(
        self,
        document: DomDocument,
        engine: CaptureEngine,
        store: SessionStateStore,
        exporter: TraceExporter,
        status: Optional[StatusChannel] = None,
        replay_options: Optional[ReplayOptions] = None,
    ):
        self.document = document
        self.engine = engine
        self.store = store
        self.exporter = exporter
        self.status = status or StatusChannel()
        self.replay_options = replay_options or ReplayOptions(failure_policy=FailurePolicy.FAIL_FAST)
        self.replay_task: Optional[asyncio.Task] = None
        self.log = logger.bind(component="session_controller")

    async def handle(self, message: SessionMessage) -> Any:
        try:
            kind = MessageType(message.type)
        except ValueError:
            raise SessionError(f"Unknown message type: {message.type!r}") from None

        match kind:
            case MessageType.PING:
                return {"ok": True}
            case MessageType.REC_START:
                await self.engine.start()
                self.store.update(message.session_id, recording=True)
                return {"recording": True}
            case MessageType.REC_STOP:
                await self.engine.stop()
                self.store.update(message.session_id, recording=False)
                return {"recording": False}
            case MessageType.REC_DUMP:
                return self._dump()
            case MessageType.REC_QUERY_STATE:
                return {"state": self.store.get(message.session_id)}
            case MessageType.RUN_TRACE:
                return await self._run_trace(message.payload)

    def _dump(self) -> dict:
        if not self.engine.steps:
            raise SessionError("Nothing has been recorded in this session")
        trace = self.engine.trace()
        path = self.exporter.export(trace)
        return {"path": str(path), "steps": trace.step_count}

    async def _run_trace(self, payload: dict) -> dict:
        if self.replay_task is not None and not self.replay_task.done():
            raise SessionError("A replay is already running")
        try:
            trace = parse_trace(payload.get("trace"))
        except TraceReplayError as e:
            await self.status.emit(StatusEvent.error(str(e)))
            raise

        options = self.replay_options
        overrides = payload.get("options") or {}
        if "respect_timing" in overrides or "respectTiming" in overrides:
            respect_timing = overrides.get("respect_timing", overrides.get("respectTiming"))
            options = replace(options, respect_timing=bool(respect_timing))

        orchestrator = ReplayOrchestrator(self.document, options=options, status=self.status)
        self.replay_task = asyncio.create_task(self._replay(orchestrator, trace))
        return {"started": True, "steps": trace.step_count}

    async def _replay(self, orchestrator: ReplayOrchestrator, trace) -> None:
        try:
            await orchestrator.run(trace)
        except Exception as e:
            self.log.error("In-page replay aborted", error=str(e))
