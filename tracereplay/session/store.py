"""Session-keyed persistent state.

Stored as one JSON object keyed by session id, e.g.
``{"tab-1": {"recording": true}}``, so that a reloaded page can ask
whether it should resume recording.
"""

import json
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()


class SessionStateStore:
    """Small JSON file of per-session state."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.log = logger.bind(component="session_store", path=str(self.path))

    def _read(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            self.log.warning("Session state unreadable, starting fresh", error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, session_id: str) -> dict[str, Any]:
        """State for ``session_id``; not recording when unknown."""
        return {"recording": False, **self._read().get(session_id, {})}

    def update(self, session_id: str, **values: Any) -> dict[str, Any]:
        data = self._read()
        state = {**data.get(session_id, {}), **values}
        data[session_id] = state
        self._write(data)
        self.log.debug("Session state updated", session_id=session_id, **values)
        return {"recording": False, **state}

    def clear(self, session_id: str) -> None:
        data = self._read()
        if data.pop(session_id, None) is not None:
            self._write(data)

    def is_recording(self, session_id: str) -> bool:
        return bool(self.get(session_id).get("recording"))
