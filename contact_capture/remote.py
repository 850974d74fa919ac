"""boto3 adapters for the contact event stream and the contact media streams.

Each method performs exactly one remote request so that the caller can wrap
it in :class:`contact_capture.retry.RetryExecutor`. Errors are left as the
botocore exceptions the executor knows how to classify.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3

# Kinesis routes records by partition key; a single-shard stream can use a constant.
CONTACT_EVENT_PARTITION_KEY = "SendContactFlowEventKey"


@dataclass
class RecordBatch:
    records: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None


class KinesisEventSource:
    """Shard discovery, iterator issuance and record fetch for one stream."""

    def __init__(self, client, stream_name: str) -> None:
        if not stream_name:
            raise ValueError("stream_name can't be empty")
        self.client = client
        self.stream_name = stream_name

    @classmethod
    def from_session(cls, session: "boto3.session.Session", stream_name: str) -> "KinesisEventSource":
        return cls(session.client("kinesis"), stream_name)

    def list_shards(self) -> List[str]:
        result = self.client.describe_stream(StreamName=self.stream_name)
        return [shard["ShardId"] for shard in result["StreamDescription"]["Shards"]]

    def latest_cursor(self, shard_id: str) -> Optional[str]:
        result = self.client.get_shard_iterator(
            StreamName=self.stream_name,
            ShardId=shard_id,
            ShardIteratorType="LATEST",
        )
        return result.get("ShardIterator")

    def fetch(self, cursor: str) -> RecordBatch:
        result = self.client.get_records(ShardIterator=cursor)
        return RecordBatch(records=list(result.get("Records", [])), next_cursor=result.get("NextShardIterator"))

    def put_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Forward a contact-flow event onto the stream, as the contact flow does."""

        return self.client.put_record(
            StreamName=self.stream_name,
            Data=json.dumps(event).encode("utf-8"),
            PartitionKey=CONTACT_EVENT_PARTITION_KEY,
        )


class KinesisVideoMediaSource:
    """Endpoint discovery and ``GetMedia`` for contact audio streams.

    ``GetMedia`` must be sent to the endpoint returned by
    ``GetDataEndpoint``, so a media client is built per session.
    """

    def __init__(self, session: "boto3.session.Session", *, video_client=None) -> None:
        self.session = session
        self.video_client = video_client or session.client("kinesisvideo")

    def resolve_endpoint(self, stream_id: str) -> Optional[str]:
        result = self.video_client.get_data_endpoint(StreamName=stream_id, APIName="GET_MEDIA")
        return result.get("DataEndpoint")

    def media_client(self, endpoint: str):
        return self.session.client("kinesis-video-media", endpoint_url=endpoint)

    def open_feed(self, endpoint: str, stream_id: str, start: datetime):
        """Return the streaming payload starting at ``start`` (server timestamp)."""

        result = self.media_client(endpoint).get_media(
            StreamName=stream_id,
            StartSelector={
                "StartSelectorType": "SERVER_TIMESTAMP",
                "StartTimestamp": start,
            },
        )
        return result["Payload"]


def make_session(region: str) -> "boto3.session.Session":
    """boto3 session bound to ``region`` using the default credential chain."""

    return boto3.session.Session(region_name=region)


__all__ = [
    "CONTACT_EVENT_PARTITION_KEY",
    "KinesisEventSource",
    "KinesisVideoMediaSource",
    "RecordBatch",
    "make_session",
]
