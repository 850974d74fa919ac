from __future__ import annotations
from typing import Iterator, Optional

import av
from av.error import FFmpegError

from contact_capture.errors import DemuxError
from contact_capture.frame_router import MediaFrame


def track_label(stream) -> Optional[str]:
    """Matroska TrackName, which FFmpeg exposes as the stream ``title``."""
    metadata = getattr(stream, "metadata", None) or {}
    return metadata.get("title") or metadata.get("TITLE")


class PyAVDemuxer:
    """Matroska demuxer over a streaming ``GetMedia`` payload.
    frames() yields raw packets per track and returns at end of stream.
    """
    def __init__(self, container_format: str = "matroska"):
        self.container_format = container_format

    def frames(self, feed) -> Iterator[MediaFrame]:
        try:
            container = av.open(feed, mode="r", format=self.container_format)
        except FFmpegError as exc:
            raise DemuxError(f"cannot open media container: {exc}") from exc
        try:
            for packet in container.demux():
                # flush packets carry no payload
                if packet.size == 0:
                    continue
                ts = float(packet.pts * packet.time_base) if packet.pts is not None and packet.time_base else None
                yield MediaFrame(track_label(packet.stream), bytes(packet), ts)
        except FFmpegError as exc:
            raise DemuxError(str(exc)) from exc
        finally:
            container.close()
