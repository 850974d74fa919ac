from __future__ import annotations
import json
import sys
from pathlib import Path
from typing import Any, Dict, IO, List, Optional
from threading import Lock


class JsonlWriter:
    """
    JSONL event log shared by the poller and every capture session.
    Thread-safe within a process; lines are flushed every ``flush_every``
    writes and on close. With ``echo`` set each line is mirrored to stderr.
    """
    def __init__(self, out_path: Path, flush_every: int = 50, echo: bool = False):
        ensure_dir(out_path.parent)
        self.path = out_path
        self._f: IO[str] = out_path.open("a", encoding="utf-8")
        self._n = 0
        self._flush_every = max(1, flush_every)
        self._echo = echo
        self._lock = Lock()
        self._closed = False

    def write(self, obj: Dict[str, Any]) -> None:
        line = json.dumps(obj, ensure_ascii=False, default=str)
        with self._lock:
            if self._closed:
                return
            self._f.write(line + "\n")
            self._n += 1
            if self._n % self._flush_every == 0:
                self._f.flush()
            if self._echo:
                sys.stderr.write(line + "\n")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._f.flush()
            finally:
                self._f.close()


class MemoryWriter:
    """In-memory writer for headless runs and tests."""
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []
        self._lock = Lock()

    def write(self, obj: Dict[str, Any]) -> None:
        with self._lock:
            self.events.append(obj)

    def of_kind(self, kind: str, session: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                e for e in self.events
                if e["kind"] == kind and (session is None or e["session"] == session)
            ]

    def close(self) -> None:
        pass


def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)
