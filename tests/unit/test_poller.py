import threading

import pytest

from contact_capture.frame_router import MediaFrame
from contact_capture.pipeline import CapturePipeline
from contact_capture.poller import EventPoller, PollerState
from contact_capture.session_manager import SessionRegistry
from sdk.config import CaptureConfig
from sdk.registry import Registry


def _poller(source, executor, writer, spawn=None, stop_event=None, registry=None):
    registry = registry if registry is not None else SessionRegistry()
    spawned = []

    def default_spawn(session):
        spawned.append(session)
        return None

    poller = EventPoller(
        source,
        registry,
        executor,
        spawn or default_spawn,
        poll_interval=0,
        events_writer=writer,
        stop_event=stop_event,
    )
    return poller, registry, spawned


def _reasons(writer):
    return [e["data"].get("reason") for e in writer.of_kind("poller") if e["data"]["state"] == "ended"]


def test_one_contact_end_to_end(tmp_path, writer, fakes):
    source = fakes.EventSource([fakes.batch([fakes.record()], next_cursor=None)])
    demuxer = fakes.Demuxer(
        [
            MediaFrame("AUDIO_FROM_CUSTOMER", b"\x01\x00\x02\x00"),
            MediaFrame("AUDIO_TO_CUSTOMER", b"\x03\x00"),
        ]
    )
    cfg = CaptureConfig(
        region="us-east-1",
        stream_name="contact-events",
        max_retry_count=1,
        retry_interval=0,
        poll_interval=0,
        audio_path=tmp_path,
    )
    pipeline = CapturePipeline(
        cfg,
        events_writer=writer,
        event_source=source,
        media_source=fakes.MediaSource(),
        demuxer=demuxer,
        registry=Registry(),
    )

    assert pipeline.run() is PollerState.ENDED
    assert pipeline.poller.join_workers(timeout=5)

    assert _reasons(writer) == ["stream closed"]
    assert len(writer.of_kind("meta")) == 1
    closed = [e for e in writer.of_kind("session", "my-stream-42") if e["data"]["state"] == "closed"]
    assert len(closed) == 1
    assert len(pipeline.sessions) == 0
    names = sorted(p.name for p in tmp_path.glob("*.wav"))
    assert names == ["2023-11-14-22-13-20-000-cu.wav", "2023-11-14-22-13-20-000-op.wav"]


def test_duplicate_contact_spawns_once(writer, executor, fakes):
    source = fakes.EventSource(
        [
            fakes.batch([fakes.record(), fakes.record()], next_cursor="cursor-1"),
            fakes.batch([fakes.record()], next_cursor=""),
        ]
    )
    poller, registry, spawned = _poller(source, executor, writer)

    poller.run()

    assert len(spawned) == 1
    assert [e["data"]["new"] for e in writer.of_kind("contact")] == [True, False, False]
    assert source.fetched == ["cursor-0", "cursor-1"]
    assert poller.records_seen == 3


def test_malformed_and_incomplete_records_are_skipped(writer, executor, fakes):
    source = fakes.EventSource(
        [
            fakes.batch(
                [
                    {"Data": b"not json"},
                    {"Data": b'{"Details": {}}'},
                    fakes.record(arn="arn:aws:kinesisvideo:us-east-1:123:stream"),
                    fakes.record(arn="arn:aws:kinesisvideo:us-east-1:123:stream/second/1"),
                ]
            )
        ]
    )
    poller, registry, spawned = _poller(source, executor, writer)

    poller.run()

    found = [e["data"]["found"] for e in writer.of_kind("contact")]
    assert found == [False, False, False, True]
    assert [s.stream_id for s in spawned] == ["second"]
    assert registry.active_ids() == ["second"]


def test_records_dispatch_in_order(writer, executor, fakes):
    arns = [f"arn:aws:kinesisvideo:us-east-1:123:stream/s{i}/x" for i in range(4)]
    source = fakes.EventSource([fakes.batch([fakes.record(arn=a) for a in arns])])
    poller, _, spawned = _poller(source, executor, writer)

    poller.run()

    assert [s.stream_id for s in spawned] == ["s0", "s1", "s2", "s3"]


def test_no_shards_ends_loop(writer, executor, fakes):
    source = fakes.EventSource([], shards=())
    poller, _, _ = _poller(source, executor, writer)

    assert poller.run() is PollerState.ENDED
    assert _reasons(writer) == ["no shards"]
    assert source.fetched == []


def test_no_iterator_ends_loop(writer, executor, fakes):
    source = fakes.EventSource([], cursor=None)
    poller, _, _ = _poller(source, executor, writer)

    poller.run()

    assert _reasons(writer) == ["no shard iterator"]
    assert source.fetched == []


def test_fetch_failure_ends_loop(writer, executor, fakes):
    source = fakes.EventSource([fakes.batch([], next_cursor="cursor-1"), None])
    poller, _, _ = _poller(source, executor, writer)

    poller.run()

    assert _reasons(writer) == ["stream closed"]
    assert poller.cursor is None
    assert poller.polls == 1
    [error] = writer.of_kind("error")
    assert error["data"]["operation"] == "get_records"
    assert error["data"]["code"] == "ExpiredIteratorException"


def test_stop_event_ends_loop_between_polls(writer, executor, fakes):
    stop = threading.Event()
    source = fakes.EventSource([fakes.batch([], next_cursor="cursor-1")])
    poller, _, _ = _poller(source, executor, writer, stop_event=stop)
    stop.set()

    assert poller.run() is PollerState.ENDED
    assert _reasons(writer) == ["stopped"]
    assert source.fetched == ["cursor-0"]


def test_state_progression(writer, executor, fakes):
    source = fakes.EventSource([fakes.batch([])])
    poller, _, _ = _poller(source, executor, writer)

    poller.run()

    states = [e["data"]["state"] for e in writer.of_kind("poller", "contact-events")]
    assert states == ["shard_resolved", "iterator_acquired", "polling", "ended"]


def test_join_workers_gives_up_when_told(writer, executor, fakes):
    gate = threading.Event()
    worker = threading.Thread(target=gate.wait, args=(5,), daemon=True)
    worker.start()
    stop = threading.Event()
    stop.set()
    poller, _, _ = _poller(fakes.EventSource([]), executor, writer)
    poller.workers.append(worker)

    try:
        assert poller.join_workers(stop=stop) is False
        assert poller.join_workers(timeout=0.05) is False
    finally:
        gate.set()
    worker.join(5)
    assert poller.join_workers(timeout=1) is True


@pytest.mark.parametrize("start_ms", [float("nan"), "Infinity", 1e20])
def test_bad_start_timestamp_does_not_stop_later_contacts(writer, executor, fakes, start_ms):
    source = fakes.EventSource(
        [
            fakes.batch(
                [
                    fakes.record(start_ms=start_ms),
                    fakes.record(arn="arn:aws:kinesisvideo:us-east-1:123:application/ok/x"),
                ]
            )
        ]
    )
    poller, _, spawned = _poller(source, executor, writer)

    assert poller.run() is PollerState.ENDED
    assert [s.stream_id for s in spawned] == ["my-stream-42", "ok"]
    assert _reasons(writer) == ["stream closed"]


def test_failed_spawn_frees_the_stream_and_keeps_polling(writer, executor, fakes):
    source = fakes.EventSource(
        [
            fakes.batch([fakes.record()], next_cursor="cursor-1"),
            fakes.batch([fakes.record()], next_cursor=None),
        ]
    )
    attempts = []

    def spawn(session):
        attempts.append(session.stream_id)
        if len(attempts) == 1:
            raise RuntimeError("can't start new thread")
        return None

    poller, registry, _ = _poller(source, executor, writer, spawn=spawn)

    assert poller.run() is PollerState.ENDED
    assert attempts == ["my-stream-42", "my-stream-42"]
    assert registry.active_ids() == ["my-stream-42"]
    [error] = writer.of_kind("error", "my-stream-42")
    assert error["data"]["operation"] == "spawn"
    assert error["data"]["code"] == "RuntimeError"
    assert _reasons(writer) == ["stream closed"]
