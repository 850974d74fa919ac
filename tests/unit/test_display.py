import threading
from datetime import datetime, timezone

import numpy as np
import pytest

from contact_capture.display import LEVEL_CEILING, SpectrumBoard, panel_label
from contact_capture.frame_router import Track
from contact_capture.stream_ref import CaptureTarget


@pytest.fixture
def board():
    return SpectrumBoard(maxsize=8)


def test_panel_label_has_millisecond_precision():
    start = datetime(2023, 11, 14, 22, 13, 20, 7000, tzinfo=timezone.utc)

    assert panel_label(start) == "2023/11/14 22:13:20.007"


def test_open_post_close(board, target):
    board.open_panel(target)
    board.post(target.stream_id, Track.CUSTOMER, np.array([0.0, 4000.0, 16000.0]))
    board.drain()

    [panel] = board.snapshot()
    assert panel["label"] == "2023/11/14 22:13:20.000"
    lane = panel["lanes"]["customer"]
    assert lane["magnitudes"] == [0.0, 4000.0, 16000.0]
    assert lane["levels"] == [0.0, 4000.0 / LEVEL_CEILING, 1.0]

    board.close_panel(target.stream_id)
    board.drain()
    assert board.snapshot() == []
    assert board.panel(target.stream_id) is None


def test_spectrum_for_unknown_panel_is_ignored(board):
    board.post("nobody", Track.OPERATOR, np.zeros(4))
    board.drain()

    assert board.snapshot() == []


def test_latest_spectrum_replaces_previous(board, target):
    board.open_panel(target)
    board.post(target.stream_id, Track.OPERATOR, np.ones(2))
    board.post(target.stream_id, Track.OPERATOR, np.zeros(3))
    board.drain()

    panel = board.panel(target.stream_id)
    assert panel["lanes"]["operator"]["magnitudes"] == [0.0, 0.0, 0.0]
    assert panel["updates"] == 2


def test_full_queue_drops_updates(target):
    board = SpectrumBoard(maxsize=2)
    board.open_panel(target)
    for _ in range(5):
        board.post(target.stream_id, Track.CUSTOMER, np.ones(1))

    assert board.dropped == 4


def test_drops_are_counted_exactly_across_threads(target):
    board = SpectrumBoard(maxsize=1)
    board.open_panel(target)
    barrier = threading.Barrier(8)

    def producer():
        barrier.wait()
        for _ in range(500):
            board.post(target.stream_id, Track.CUSTOMER, np.ones(1))

    threads = [threading.Thread(target=producer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert board.dropped == 8 * 500


def test_panels_are_sorted_by_stream(board):
    for name in ("b", "a"):
        board.open_panel(CaptureTarget(name, datetime(2024, 1, 1, tzinfo=timezone.utc)))
    board.drain()

    assert [p["stream_id"] for p in board.snapshot()] == ["a", "b"]


def test_background_thread_applies_updates(board, target):
    board.start()
    board.open_panel(target)
    board.stop()

    assert board.panel(target.stream_id) is not None
