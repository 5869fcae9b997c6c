"""
Session storage keyed by call id.

The orchestrator only sees the SessionStore protocol, so the in-memory
table below can be swapped for an external store without touching the
dialogue logic.
"""

import logging
import threading
from typing import Optional, Protocol

from spark_voice.schemas.session_schema import CallSession

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def get(self, call_id: str) -> Optional[CallSession]: ...

    def put(self, session: CallSession) -> None: ...

    def put_if_present(self, session: CallSession) -> bool: ...

    def delete(self, call_id: str) -> Optional[CallSession]: ...


class InMemorySessionStore:
    """Thread-safe dict of active calls for a single process."""

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}
        self._lock = threading.Lock()

    def get(self, call_id: str) -> Optional[CallSession]:
        with self._lock:
            return self._sessions.get(call_id)

    def put(self, session: CallSession) -> None:
        with self._lock:
            self._sessions[session.call_id] = session

    def put_if_present(self, session: CallSession) -> bool:
        """Replace a stored session; a call removed in the meantime stays removed."""
        with self._lock:
            if session.call_id not in self._sessions:
                return False
            self._sessions[session.call_id] = session
            return True

    def delete(self, call_id: str) -> Optional[CallSession]:
        with self._lock:
            session = self._sessions.pop(call_id, None)
        if session is not None:
            logger.debug("Session %s removed", call_id)
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        with self._lock:
            return call_id in self._sessions
