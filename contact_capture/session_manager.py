"""Registry of capture sessions, one per media stream."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sdk.ids import new_ulid

from .stream_ref import CaptureTarget


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Session:
    """One contact's capture, from dispatch to written files."""

    target: CaptureTarget
    session_id: str = field(default_factory=new_ulid)
    status: SessionStatus = SessionStatus.PENDING

    @property
    def stream_id(self) -> str:
        return self.target.stream_id


class SessionRegistry:
    """Owns the active sessions keyed by media stream id.

    All access goes through :meth:`dispatch` and :meth:`remove` under a single
    lock that is never held across I/O.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def dispatch(self, target: CaptureTarget) -> Tuple[Session, bool]:
        """Register ``target`` unless its stream already has a session.

        Returns the registered session and whether it was created by this
        call. The caller launches a worker only when the flag is ``True``.
        """

        with self._lock:
            existing = self._sessions.get(target.stream_id)
            if existing is not None:
                return existing, False
            session = Session(target=target)
            self._sessions[target.stream_id] = session
            return session, True

    def remove(self, stream_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.pop(stream_id, None)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    def active_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._sessions)

    def __contains__(self, stream_id: object) -> bool:
        with self._lock:
            return stream_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


__all__ = ["Session", "SessionRegistry", "SessionStatus"]
