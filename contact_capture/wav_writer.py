"""Write accumulated lane PCM as standalone ``.wav`` files.

Contact audio arrives as 8 kHz, 16-bit, mono little-endian PCM, so the bytes
are written verbatim behind a 44-byte RIFF/WAVE header.
"""

from __future__ import annotations

import os
import wave
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Optional

from core.events import emit

from .event_writer import ensure_dir

SAMPLE_RATE = 8000
SAMPLE_WIDTH = 2  # int16
CHANNELS = 1


def wav_filename(start: datetime, suffix: str, tz: Optional[tzinfo] = None) -> str:
    """``yyyy-MM-dd-HH-mm-ss-SSS-<suffix>.wav`` for the contact start time."""

    local = start.astimezone(tz or timezone.utc)
    return f"{local:%Y-%m-%d-%H-%M-%S}-{local.microsecond // 1000:03d}-{suffix}.wav"


def write_wav(path: Path, data: bytes) -> None:
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(CHANNELS)
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(SAMPLE_RATE)
        wf.writeframes(data)


def finalize_lane(
    data: bytes,
    output_dir: Path,
    start: datetime,
    suffix: str,
    *,
    tz: Optional[tzinfo] = None,
    session: str = "",
    events_writer=None,
) -> Optional[Path]:
    """Write one lane's file; returns its path, or ``None`` if writing failed.

    The file appears under its final name only once it is complete.
    """

    output_dir = Path(output_dir)
    fpath = output_dir / wav_filename(start, suffix, tz)
    part = fpath.with_name(fpath.name + ".part")
    try:
        ensure_dir(output_dir)
        write_wav(part, data)
        os.replace(part, fpath)
    except OSError as exc:
        emit(events_writer, "error", session, operation="write_wav", path=str(fpath), message=str(exc))
        try:
            part.unlink(missing_ok=True)
        except OSError:
            pass
        return None
    emit(events_writer, "file", session, path=str(fpath), lane=suffix, bytes=len(data))
    return fpath


__all__ = ["CHANNELS", "SAMPLE_RATE", "SAMPLE_WIDTH", "finalize_lane", "wav_filename", "write_wav"]
