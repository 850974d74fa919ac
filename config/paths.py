# config/paths.py
"""
Where the capture pipeline writes: lane ``.wav`` files under the audio root,
``events.jsonl`` under the logs root.

CONNECT_CAPTURE_AUDIO_ROOT and CONNECT_CAPTURE_LOGS_ROOT override the
per-user data directory of the current OS.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _data_home() -> Path:
    # %LOCALAPPDATA%, ~/Library/Application Support or $XDG_DATA_HOME
    if sys.platform.startswith("win"):
        base = os.getenv("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / "ConnectCapture"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "ConnectCapture"
    return Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")) / "connect-capture"


@dataclass(frozen=True)
class Paths:
    audio_root: Path
    logs_root: Path

    @staticmethod
    def from_env() -> "Paths":
        home = _data_home()
        return Paths(
            Path(os.getenv("CONNECT_CAPTURE_AUDIO_ROOT", home / "audio")),
            Path(os.getenv("CONNECT_CAPTURE_LOGS_ROOT", home / "logs")),
        )

    @property
    def events_log(self) -> Path:
        return self.logs_root / "events.jsonl"

    def ensure_all(self) -> None:
        for p in (self.audio_root, self.logs_root):
            p.mkdir(parents=True, exist_ok=True)


_paths_singleton: Optional[Paths] = None


def get_paths(force_refresh: bool = False) -> Paths:
    """Cached :class:`Paths`; the roots exist once this returns."""
    global _paths_singleton
    if force_refresh or _paths_singleton is None:
        _paths_singleton = Paths.from_env()
        _paths_singleton.ensure_all()
    return _paths_singleton
