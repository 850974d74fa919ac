from __future__ import annotations
from pydantic import BaseModel, Field
from pathlib import Path
from datetime import tzinfo
from zoneinfo import ZoneInfo

from config.paths import get_paths

CUSTOMER_TRACK = "AUDIO_FROM_CUSTOMER"
OPERATOR_TRACK = "AUDIO_TO_CUSTOMER"

class CaptureConfig(BaseModel):
    region: str = Field(..., min_length=1)
    stream_name: str = Field(..., min_length=1)
    max_retry_count: int = Field(3, ge=0)
    # seconds
    retry_interval: float = Field(1.0, ge=0)
    poll_interval: float = Field(1.0, ge=0)
    audio_path: Path = Field(default_factory=lambda: get_paths().audio_root)
    timezone: str = "UTC"
    customer_track: str = Field(CUSTOMER_TRACK, min_length=1)
    operator_track: str = Field(OPERATOR_TRACK, min_length=1)
    display_queue_size: int = Field(1024, ge=1)
    plugins: dict = Field(default_factory=lambda: {
        "demuxer": "plugins.demuxers.pyav.impl:PyAVDemuxer",
    })

    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)
