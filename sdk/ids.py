from __future__ import annotations
import time, ulid
from datetime import datetime, timezone
NS_PER_MS = 1_000_000
def now_monotonic_ns() -> int: return time.monotonic_ns()
def ms_since(start_ns: int) -> int: return (now_monotonic_ns() - start_ns) // NS_PER_MS
def new_ulid() -> str: return str(ulid.new())
def from_epoch_ms(ms: int) -> datetime: return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
