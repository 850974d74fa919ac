"""Turn a contact-flow event record into a :class:`CaptureTarget`.

The contact flow forwards its whole event JSON onto the data stream. The
customer audio stream reference lives at::

    Details.ContactData.MediaStreams.Customer.Audio.{StreamARN, StartTimestamp}

Kinesis Video ARNs look like
``arn:aws:kinesisvideo:region:account-id:application/stream-name/code``; the
second ``/`` segment is the stream name used for every media call.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sdk.ids import from_epoch_ms

from .errors import MalformedEventError

AUDIO_PATH = ("Details", "ContactData", "MediaStreams", "Customer", "Audio")


@dataclass(frozen=True)
class CaptureTarget:
    """Media stream identity plus the instant capture should start from."""

    stream_id: str
    start_timestamp: datetime

    def __post_init__(self) -> None:
        if not self.stream_id:
            raise ValueError("stream_id can't be empty")


def parse_event_body(data: Any) -> Dict[str, Any]:
    """Decode a record's ``Data`` blob into a mapping."""

    try:
        body = json.loads(data)
    except (TypeError, ValueError) as exc:
        raise MalformedEventError(f"record data is not JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise MalformedEventError("record data is not a JSON object")
    return body


def _path(node: Any, keys) -> Any:
    for key in keys:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _epoch_ms(value: Any) -> int:
    # missing, non-numeric or non-finite timestamps read as the epoch
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _start_time(value: Any) -> datetime:
    try:
        return from_epoch_ms(_epoch_ms(value))
    except (OverflowError, OSError, ValueError):
        # outside the range datetime can represent
        return from_epoch_ms(0)


def extract_target(body: Mapping[str, Any]) -> Optional[CaptureTarget]:
    """Return the capture target described by ``body`` or ``None``."""

    audio = _path(body, AUDIO_PATH)
    arn = _path(audio, ("StreamARN",))
    if not isinstance(arn, str) or not arn:
        return None
    parts = arn.split("/")
    if len(parts) < 2 or not parts[1]:
        return None
    start = _start_time(_path(audio, ("StartTimestamp",)))
    return CaptureTarget(stream_id=parts[1], start_timestamp=start)


def describe_miss(body: Mapping[str, Any]) -> str:
    """Short reason used when reporting a skipped record."""

    arn = _path(body, AUDIO_PATH + ("StreamARN",))
    if not isinstance(arn, str) or not arn:
        return "StreamARN not found"
    return f"stream name not found in StreamARN {arn!r}"


__all__ = ["AUDIO_PATH", "CaptureTarget", "describe_miss", "extract_target", "parse_event_body"]
