"""Per-contact capture worker.

A :class:`CaptureSession` resolves the ``GetMedia`` endpoint for its stream,
opens the media feed at the contact's start time and pumps demuxed frames
through a :class:`FrameRouter` until the feed ends. Everything acquired along
the way is released by one ``ExitStack``, in reverse order, on every exit
path: feed handle, lane files, display panel, registry entry.
"""

from __future__ import annotations

import contextlib
import threading
from datetime import tzinfo
from pathlib import Path
from typing import Dict, Optional

from core.events import emit
from sdk.ids import ms_since, now_monotonic_ns

from .errors import DemuxError
from .frame_router import LANE_SUFFIX, FrameRouter, Track, TrackLabels
from .retry import classify_failure
from .session_manager import Session, SessionRegistry, SessionStatus
from .wav_writer import finalize_lane


def _close_quietly(feed) -> None:
    close = getattr(feed, "close", None)
    if close is not None:
        with contextlib.suppress(Exception):
            close()


class CaptureSession:
    """Capture one contact's audio on a dedicated thread."""

    def __init__(
        self,
        session: Session,
        registry: SessionRegistry,
        media_source,
        demuxer,
        executor,
        *,
        output_dir: Path,
        display,
        events_writer,
        labels: Optional[TrackLabels] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.session = session
        self.registry = registry
        self.media_source = media_source
        self.demuxer = demuxer
        self.executor = executor
        self.output_dir = Path(output_dir)
        self.display = display
        self.events_writer = events_writer
        self.labels = labels or TrackLabels()
        self.tz = tz

        self.router: Optional[FrameRouter] = None
        self.frames = 0
        self.files: Dict[Track, Optional[Path]] = {}
        self._started_ns = 0

    @property
    def stream_id(self) -> str:
        return self.session.stream_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name=f"capture-{self.stream_id}", daemon=True)
        thread.start()
        return thread

    def run(self) -> None:
        sid = self.stream_id
        start = self.session.target.start_timestamp
        self._started_ns = now_monotonic_ns()
        self._emit("started", session_id=self.session.session_id, start=start.isoformat())

        with contextlib.ExitStack() as stack:
            stack.callback(self._release)

            endpoint = self.executor.call(
                lambda: self.media_source.resolve_endpoint(sid),
                name="get_data_endpoint",
                session=sid,
            )
            if not endpoint:
                self._emit("aborted", reason="no data endpoint")
                return

            feed = self.executor.call(
                lambda: self.media_source.open_feed(endpoint, sid, start),
                name="get_media",
                session=sid,
            )
            if feed is None:
                self._emit("aborted", reason="no media payload")
                return

            router = FrameRouter(self.session.target, self.labels, self.display)
            self.router = router
            stack.callback(router.close)
            stack.callback(self._finalize, router)
            stack.callback(_close_quietly, feed)

            self.session.status = SessionStatus.ACTIVE
            self._emit("active", endpoint=endpoint)
            self._pump(feed, router)

    def _pump(self, feed, router: FrameRouter) -> None:
        # blocks until the producer ends the stream or the container breaks
        try:
            for frame in self.demuxer.frames(feed):
                router.route(frame.track_label, frame.data)
                self.frames += 1
        except DemuxError as exc:
            emit(self.events_writer, "error", self.stream_id, operation="demux", message=str(exc), frames=self.frames)
        except Exception as exc:
            # the payload is read lazily, so transport failures surface here
            failure = classify_failure(exc)
            if failure is None:
                raise
            emit(
                self.events_writer,
                "error",
                self.stream_id,
                operation="get_media_read",
                code=failure.code,
                message=failure.message,
                retryable=failure.retryable,
                status=failure.status,
                frames=self.frames,
            )

    # ------------------------------------------------------------------
    # Teardown steps
    # ------------------------------------------------------------------
    def _finalize(self, router: FrameRouter) -> None:
        self.session.status = SessionStatus.CLOSING
        for track in (Track.CUSTOMER, Track.OPERATOR):
            self.files[track] = finalize_lane(
                router.lanes[track].getvalue(),
                self.output_dir,
                self.session.target.start_timestamp,
                LANE_SUFFIX[track],
                tz=self.tz,
                session=self.stream_id,
                events_writer=self.events_writer,
            )

    def _release(self) -> None:
        self.registry.remove(self.stream_id)
        self.session.status = SessionStatus.CLOSED
        lanes = {}
        if self.router is not None:
            lanes = {track.value: lane.frames for track, lane in self.router.lanes.items()}
        self._emit(
            "closed",
            frames=self.frames,
            lane_frames=lanes,
            files={track.value: (str(p) if p else None) for track, p in self.files.items()},
            elapsed_ms=ms_since(self._started_ns),
        )

    def _emit(self, state: str, **data) -> None:
        emit(self.events_writer, "session", self.stream_id, state=state, **data)


__all__ = ["CaptureSession"]
