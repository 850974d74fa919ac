import io
import json
from datetime import datetime, timezone

import pytest

from contact_capture.errors import RemoteCallError
from contact_capture.event_writer import MemoryWriter
from contact_capture.frame_router import MediaFrame
from contact_capture.remote import RecordBatch
from contact_capture.retry import RetryExecutor
from contact_capture.stream_ref import CaptureTarget

ARN = "arn:aws:kinesisvideo:us-east-1:123:application/my-stream-42/abcxyz"
START_MS = 1700000000000


def contact_event(arn=ARN, start_ms=START_MS):
    return {
        "Details": {
            "ContactData": {
                "MediaStreams": {
                    "Customer": {
                        "Audio": {"StreamARN": arn, "StartTimestamp": start_ms}
                    }
                }
            }
        }
    }


def contact_record(arn=ARN, start_ms=START_MS):
    return {"Data": json.dumps(contact_event(arn, start_ms)).encode("utf-8")}


class FakeEventSource:
    """Event source replaying scripted batches; ``None`` entries fail fatally."""

    stream_name = "contact-events"

    def __init__(self, batches, shards=("shardId-000000000000",), cursor="cursor-0"):
        self.batches = list(batches)
        self.shards = list(shards)
        self.cursor = cursor
        self.fetched = []

    def list_shards(self):
        return self.shards

    def latest_cursor(self, shard_id):
        return self.cursor

    def fetch(self, cursor):
        self.fetched.append(cursor)
        batch = self.batches.pop(0)
        if batch is None:
            raise RemoteCallError("gone", code="ExpiredIteratorException", retryable=False)
        return batch


class FakeFeed(io.BytesIO):
    pass


class FakeMediaSource:
    def __init__(self, endpoint="https://media.example", fail_endpoint=False, fail_feed=False):
        self.endpoint = endpoint
        self.fail_endpoint = fail_endpoint
        self.fail_feed = fail_feed
        self.opened = []
        self.feeds = []

    def resolve_endpoint(self, stream_id):
        if self.fail_endpoint:
            raise RemoteCallError("no such stream", code="ResourceNotFoundException")
        return self.endpoint

    def open_feed(self, endpoint, stream_id, start):
        if self.fail_feed:
            raise RemoteCallError("denied", code="NotAuthorizedException")
        self.opened.append((endpoint, stream_id, start))
        feed = FakeFeed(b"")
        self.feeds.append(feed)
        return feed


class ScriptedDemuxer:
    """Yields the given frames, then optionally raises ``error``."""

    def __init__(self, frames, error=None, gate=None):
        self.frames_to_yield = list(frames)
        self.error = error
        self.gate = gate

    def frames(self, feed):
        if self.gate is not None:
            self.gate.wait(5)
        for frame in self.frames_to_yield:
            yield frame
        if self.error is not None:
            raise self.error


class RecordingDisplay:
    def __init__(self):
        self.opened = []
        self.posts = []
        self.closed = []

    def open_panel(self, target):
        self.opened.append(target.stream_id)

    def post(self, stream_id, track, magnitudes):
        self.posts.append((stream_id, track, list(magnitudes)))

    def close_panel(self, stream_id):
        self.closed.append(stream_id)


@pytest.fixture
def writer():
    return MemoryWriter()


@pytest.fixture
def executor(writer):
    return RetryExecutor(2, 0, events_writer=writer)


@pytest.fixture
def target():
    return CaptureTarget("my-stream-42", datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc))


@pytest.fixture
def customer_frame():
    return lambda data: MediaFrame("AUDIO_FROM_CUSTOMER", data)


@pytest.fixture
def operator_frame():
    return lambda data: MediaFrame("AUDIO_TO_CUSTOMER", data)


@pytest.fixture
def fakes():
    class _Fakes:
        EventSource = FakeEventSource
        MediaSource = FakeMediaSource
        Demuxer = ScriptedDemuxer
        Display = RecordingDisplay
        record = staticmethod(contact_record)
        event = staticmethod(contact_event)
        batch = staticmethod(lambda records, next_cursor=None: RecordBatch(list(records), next_cursor))

    return _Fakes
