"""Exception types raised inside the capture pipeline."""

from __future__ import annotations

from typing import Optional


class CaptureError(RuntimeError):
    """Base class for pipeline errors."""


class RemoteCallError(CaptureError):
    """A remote call failed and the collaborator told us whether to retry."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "RemoteCallError",
        retryable: bool = False,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable
        self.status = status


class MalformedEventError(CaptureError):
    """A contact event record could not be decoded."""


class DemuxError(CaptureError):
    """The media feed could not be decoded any further."""


__all__ = ["CaptureError", "RemoteCallError", "MalformedEventError", "DemuxError"]
