"""Poll the contact event stream and dispatch one capture per new contact."""

from __future__ import annotations

import enum
import threading
import time
from typing import Callable, List, Optional

from core.events import emit

from .errors import MalformedEventError
from .session_manager import Session, SessionRegistry
from .stream_ref import describe_miss, extract_target, parse_event_body


class PollerState(str, enum.Enum):
    INIT = "init"
    SHARD_RESOLVED = "shard_resolved"
    ITERATOR_ACQUIRED = "iterator_acquired"
    POLLING = "polling"
    ENDED = "ended"


class EventPoller:
    """Sequential shard reader driving the session registry.

    ``spawn`` receives every newly registered :class:`Session` and returns the
    thread running its capture; it is called outside the registry lock and
    must not block. ``stop_event`` ends the loop between polls and cancels a
    pending retry pause.
    """

    def __init__(
        self,
        source,
        registry: SessionRegistry,
        executor,
        spawn: Callable[[Session], Optional[threading.Thread]],
        *,
        poll_interval: float,
        events_writer,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        if poll_interval < 0:
            raise ValueError("poll_interval can't be negative")
        self.source = source
        self.registry = registry
        self.executor = executor
        self.spawn = spawn
        self.poll_interval = float(poll_interval)
        self.events_writer = events_writer
        self.stop_event = stop_event or threading.Event()

        self.state = PollerState.INIT
        self.cursor: Optional[str] = None
        self.polls = 0
        self.records_seen = 0
        self.workers: List[threading.Thread] = []

    @property
    def stream_name(self) -> str:
        return getattr(self.source, "stream_name", "")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    def run(self) -> PollerState:
        shards = self._remote(self.source.list_shards, "describe_stream")
        if not shards:
            return self._end("no shards")
        shard_id = shards[0]
        self._set_state(PollerState.SHARD_RESOLVED, shard=shard_id)

        cursor = self._remote(lambda: self.source.latest_cursor(shard_id), "get_shard_iterator")
        if not cursor:
            return self._end("no shard iterator")
        self.cursor = cursor
        self._set_state(PollerState.ITERATOR_ACQUIRED, shard=shard_id)

        self._set_state(PollerState.POLLING)
        while True:
            if not self.poll_once():
                return self._end("stream closed")
            if self.stop_event.wait(self.poll_interval):
                return self._end("stopped")

    def poll_once(self) -> bool:
        """Fetch and dispatch one batch; ``False`` once the cursor is gone."""

        cursor = self.cursor
        batch = self._remote(lambda: self.source.fetch(cursor), "get_records")
        if batch is None:
            self.cursor = None
            return False
        self.polls += 1
        for record in batch.records:
            self.handle_record(record)
        self.cursor = batch.next_cursor or None
        return self.cursor is not None

    def handle_record(self, record) -> Optional[Session]:
        """Extract, dispatch and, for a new contact, launch its capture."""

        self.records_seen += 1
        data = record.get("Data") if hasattr(record, "get") else record
        try:
            body = parse_event_body(data)
        except MalformedEventError as exc:
            emit(self.events_writer, "contact", self.stream_name, found=False, reason=str(exc))
            return None
        target = extract_target(body)
        if target is None:
            emit(self.events_writer, "contact", self.stream_name, found=False, reason=describe_miss(body))
            return None

        session, is_new = self.registry.dispatch(target)
        emit(
            self.events_writer,
            "contact",
            self.stream_name,
            found=True,
            stream_id=target.stream_id,
            start=target.start_timestamp.isoformat(),
            new=is_new,
        )
        if not is_new:
            return session
        try:
            thread = self.spawn(session)
        except Exception as exc:
            # free the identity so a later event for it can retry
            self.registry.remove(target.stream_id)
            emit(
                self.events_writer,
                "error",
                target.stream_id,
                operation="spawn",
                code=type(exc).__name__,
                message=str(exc),
            )
            return None
        if thread is not None:
            self.workers = [t for t in self.workers if t.is_alive()]
            self.workers.append(thread)
        return session

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def join_workers(self, timeout: Optional[float] = None, stop: Optional[threading.Event] = None) -> bool:
        """Wait for spawned captures to finish; ``True`` if all of them did.

        ``stop`` gives up the wait early when set.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in list(self.workers):
            while thread.is_alive():
                if stop is not None and stop.is_set():
                    return False
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                thread.join(0.25 if remaining is None else min(0.25, remaining))
        return True

    def _remote(self, operation, name: str):
        return self.executor.call(operation, name=name, session=self.stream_name, cancel=self.stop_event)

    def _set_state(self, state: PollerState, **data) -> None:
        self.state = state
        emit(self.events_writer, "poller", self.stream_name, state=state.value, **data)

    def _end(self, reason: str) -> PollerState:
        self._set_state(PollerState.ENDED, reason=reason, polls=self.polls, records=self.records_seen)
        return self.state


__all__ = ["EventPoller", "PollerState"]
