"""Wire configuration, AWS clients and the capture components together."""

from __future__ import annotations

import threading
from typing import Optional

from core.events import emit
from sdk.config import CaptureConfig
from sdk.registry import REGISTRY, Registry

from .capture_session import CaptureSession
from .display import NullDisplay
from .frame_router import TrackLabels
from .poller import EventPoller
from .remote import KinesisEventSource, KinesisVideoMediaSource, make_session
from .retry import RetryExecutor
from .session_manager import Session, SessionRegistry


class CapturePipeline:
    """Event poller plus the factory that starts one capture per contact."""

    def __init__(
        self,
        cfg: CaptureConfig,
        *,
        events_writer,
        event_source=None,
        media_source=None,
        demuxer=None,
        display=None,
        stop_event: Optional[threading.Event] = None,
        registry: Optional[Registry] = None,
    ) -> None:
        self.cfg = cfg
        self.events_writer = events_writer
        self.stop_event = stop_event or threading.Event()
        self.display = display or NullDisplay()
        self.labels = TrackLabels(customer=cfg.customer_track, operator=cfg.operator_track)
        self.tz = cfg.tz()

        plugins = registry or REGISTRY
        plugins.update(cfg.plugins)
        if event_source is None or media_source is None:
            aws = make_session(cfg.region)
            event_source = event_source or KinesisEventSource.from_session(aws, cfg.stream_name)
            media_source = media_source or KinesisVideoMediaSource(aws)
        self.event_source = event_source
        self.media_source = media_source
        self.demuxer = demuxer or plugins.create("demuxer")

        self.executor = RetryExecutor(cfg.max_retry_count, cfg.retry_interval, events_writer=events_writer)
        self.sessions = SessionRegistry()
        self.poller = EventPoller(
            self.event_source,
            self.sessions,
            self.executor,
            self.spawn,
            poll_interval=cfg.poll_interval,
            events_writer=events_writer,
            stop_event=self.stop_event,
        )

    def spawn(self, session: Session) -> threading.Thread:
        capture = CaptureSession(
            session,
            self.sessions,
            self.media_source,
            self.demuxer,
            self.executor,
            output_dir=self.cfg.audio_path,
            display=self.display,
            events_writer=self.events_writer,
            labels=self.labels,
            tz=self.tz,
        )
        return capture.start()

    def run(self):
        emit(
            self.events_writer,
            "meta",
            self.cfg.stream_name,
            region=self.cfg.region,
            audio_path=str(self.cfg.audio_path),
            max_retry_count=self.cfg.max_retry_count,
            retry_interval=self.cfg.retry_interval,
            poll_interval=self.cfg.poll_interval,
            tracks={"customer": self.labels.customer, "operator": self.labels.operator},
        )
        return self.poller.run()

    def stop(self) -> None:
        self.stop_event.set()


__all__ = ["CapturePipeline"]
