"""Live display state: one panel per active contact, one spectrum per lane.

Capture sessions talk to the board through a bounded queue that a single
background thread drains, so posting from a capture thread never waits on
the display. Readers (the UI API) take consistent snapshots under a lock.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .frame_router import Track
from .stream_ref import CaptureTarget

# magnitudes at or above this draw as a full bar
LEVEL_CEILING = 8000.0


def panel_label(start: datetime) -> str:
    """``yyyy/MM/dd HH:mm:ss.SSS`` label shown on a contact panel."""

    return f"{start:%Y/%m/%d %H:%M:%S}.{start.microsecond // 1000:03d}"


@dataclass
class Panel:
    stream_id: str
    label: str
    spectra: Dict[str, List[float]] = field(default_factory=dict)
    updates: int = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "stream_id": self.stream_id,
            "label": self.label,
            "updates": self.updates,
            "lanes": {
                lane: {
                    "magnitudes": values,
                    "levels": [min(v, LEVEL_CEILING) / LEVEL_CEILING for v in values],
                }
                for lane, values in self.spectra.items()
            },
        }


class NullDisplay:
    """Display that discards everything; used when no UI is attached."""

    def open_panel(self, target: CaptureTarget) -> None:
        pass

    def post(self, stream_id: str, track: Track, magnitudes: np.ndarray) -> None:
        pass

    def close_panel(self, stream_id: str) -> None:
        pass


class SpectrumBoard:
    """Display collaborator fed asynchronously by capture sessions."""

    def __init__(self, maxsize: int = 1024) -> None:
        self._queue: "queue.Queue[Optional[Tuple[str, Any]]]" = queue.Queue(maxsize=maxsize)
        self._panels: Dict[str, Panel] = {}
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="spectrum-board", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        if self._thread is None:
            return
        self._queue.put(None)  # blocking; the consumer keeps draining
        self._thread.join(timeout=timeout)
        self._thread = None

    # ------------------------------------------------------------------
    # Producer side (capture threads)
    # ------------------------------------------------------------------
    def open_panel(self, target: CaptureTarget) -> None:
        self._offer(("open", (target.stream_id, panel_label(target.start_timestamp))))

    def post(self, stream_id: str, track: Track, magnitudes: np.ndarray) -> None:
        self._offer(("spectrum", (stream_id, track.value, [float(v) for v in magnitudes])))

    def close_panel(self, stream_id: str) -> None:
        self._offer(("close", stream_id))

    def _offer(self, item: Tuple[str, Any]) -> None:
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            with self._lock:
                self.dropped += 1

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------
    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                break
            self.apply(item)

    def apply(self, item: Tuple[str, Any]) -> None:
        op, payload = item
        with self._lock:
            if op == "open":
                stream_id, label = payload
                self._panels.setdefault(stream_id, Panel(stream_id, label))
            elif op == "spectrum":
                stream_id, lane, values = payload
                panel = self._panels.get(stream_id)
                if panel is not None:
                    panel.spectra[lane] = values
                    panel.updates += 1
            elif op == "close":
                self._panels.pop(payload, None)

    def drain(self) -> None:
        """Apply everything queued so far on the calling thread."""

        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is not None:
                self.apply(item)

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------
    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._panels[k].snapshot() for k in sorted(self._panels)]

    def panel(self, stream_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            panel = self._panels.get(stream_id)
            return panel.snapshot() if panel is not None else None


__all__ = ["LEVEL_CEILING", "NullDisplay", "Panel", "SpectrumBoard", "panel_label"]
