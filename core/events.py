"""Core event models shared across the project.

Every diagnostic the capture pipeline produces (poller state changes,
skipped contact events, remote failures, session lifecycle, written files)
is an :class:`Event` serialised to one JSONL line.
"""

from __future__ import annotations

from typing import Any, Dict, Literal

import time

import ulid
from pydantic import BaseModel, Field


def now_ts_ms() -> int:
    """Return the current timestamp in milliseconds."""

    return int(time.time() * 1000)


def new_event_id() -> str:
    """Generate a ULID based identifier for events."""

    return str(ulid.new())


EventKind = Literal["meta", "poller", "contact", "session", "error", "file"]


class Event(BaseModel):
    """Canonical event model emitted by the poller and capture sessions.

    ``session`` names the Kinesis data stream for poller-level events and the
    media stream id for anything scoped to one capture session.
    """

    id: str = Field(default_factory=new_event_id)
    ts_ms: int = Field(default_factory=now_ts_ms)
    kind: EventKind
    session: str
    data: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "allow"


def event_dump(event: Event) -> Dict[str, Any]:
    """Return a serialisable representation of ``event``.

    Hides the pydantic v1/v2 API difference so call sites can unconditionally
    obtain a plain ``dict`` suitable for JSON serialisation.
    """

    if hasattr(event, "model_dump"):
        return event.model_dump()  # type: ignore[return-value]
    return event.dict()  # type: ignore[return-value]


def emit(writer, kind: EventKind, session: str, **data: Any) -> None:
    """Build an :class:`Event` and hand its dict form to ``writer``."""

    if writer is None:
        return
    writer.write(event_dump(Event(kind=kind, session=session, data=data)))


__all__ = ["Event", "EventKind", "emit", "event_dump", "now_ts_ms", "new_event_id"]
