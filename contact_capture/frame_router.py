"""Route demuxed media frames into the customer and operator lanes."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import numpy as np

from sdk.config import CUSTOMER_TRACK, OPERATOR_TRACK

from .spectrum import estimate_spectrum
from .stream_ref import CaptureTarget


class Track(str, enum.Enum):
    CUSTOMER = "customer"
    OPERATOR = "operator"
    IGNORED = "ignored"


# file name suffix per lane
LANE_SUFFIX = {Track.CUSTOMER: "cu", Track.OPERATOR: "op"}


@dataclass(frozen=True)
class MediaFrame:
    """One demuxed frame: track name, raw payload and presentation time (s)."""

    track_label: Optional[str]
    data: bytes
    timestamp: Optional[float] = None


@dataclass(frozen=True)
class TrackLabels:
    """Track names the media producer uses for each side of the call."""

    customer: str = CUSTOMER_TRACK
    operator: str = OPERATOR_TRACK

    def classify(self, label: Optional[str]) -> Track:
        if label == self.customer:
            return Track.CUSTOMER
        if label == self.operator:
            return Track.OPERATOR
        return Track.IGNORED


class LaneAccumulator:
    """Append-only PCM buffer for one lane of one session."""

    def __init__(self) -> None:
        self._buf = bytearray()
        self.frames = 0

    def append(self, data: bytes) -> None:
        self._buf += data
        self.frames += 1

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def clear(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)


class FrameRouter:
    """Classify frames by track label, accumulate them and feed the display.

    Owned by a single capture session thread. The display is only ever
    posted to; its ``post`` must not block.
    """

    def __init__(
        self,
        target: CaptureTarget,
        labels: TrackLabels,
        display,
        *,
        estimator: Callable[[bytes], Optional[np.ndarray]] = estimate_spectrum,
    ) -> None:
        self.target = target
        self.labels = labels
        self.display = display
        self._estimator = estimator
        self.lanes: Dict[Track, LaneAccumulator] = {
            Track.CUSTOMER: LaneAccumulator(),
            Track.OPERATOR: LaneAccumulator(),
        }
        self.panel_open = False

    def route(self, label: Optional[str], data: bytes) -> Track:
        track = self.labels.classify(label)
        if track is Track.IGNORED:
            return track
        if not self.panel_open:
            self.display.open_panel(self.target)
            self.panel_open = True
        self.lanes[track].append(data)
        magnitudes = self._estimator(data)
        if magnitudes is not None:
            self.display.post(self.target.stream_id, track, magnitudes)
        return track

    def close(self) -> None:
        for lane in self.lanes.values():
            lane.clear()
        if self.panel_open:
            self.display.close_panel(self.target.stream_id)
            self.panel_open = False


__all__ = ["FrameRouter", "LaneAccumulator", "LANE_SUFFIX", "MediaFrame", "Track", "TrackLabels"]
