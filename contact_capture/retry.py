"""Retry policy applied to every remote call the pipeline makes.

A call is attempted once and then up to ``max_retries`` more times while the
failure is classified as retryable. Fatal failures, exhausted retries and a
cancelled pause all surface as ``None`` so that callers abort only their own
unit of work.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from core.events import emit

from .errors import RemoteCallError

T = TypeVar("T")

RETRYABLE_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "LimitExceededException",
        "ClientLimitExceededException",
        "ConnectionLimitExceededException",
        "KMSThrottlingException",
        "RequestTimeout",
        "RequestTimeoutException",
        "ServiceUnavailable",
        "InternalFailure",
    }
)

_RETRYABLE_TRANSPORT_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


@dataclass(frozen=True)
class RemoteFailure:
    """Diagnostic detail for one failed attempt."""

    code: str
    message: str
    retryable: bool
    status: Optional[int] = None


def classify_failure(exc: BaseException) -> Optional[RemoteFailure]:
    """Map an exception to a :class:`RemoteFailure`.

    Returns ``None`` when ``exc`` is not a remote failure at all; the executor
    lets such exceptions propagate.
    """

    if isinstance(exc, RemoteCallError):
        return RemoteFailure(exc.code, exc.message, exc.retryable, exc.status)
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", "ClientError"))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        retryable = code in RETRYABLE_ERROR_CODES or (status is not None and status >= 500)
        return RemoteFailure(code, str(error.get("Message", exc)), retryable, status)
    if isinstance(exc, _RETRYABLE_TRANSPORT_ERRORS):
        return RemoteFailure(type(exc).__name__, str(exc), True)
    if isinstance(exc, BotoCoreError):
        return RemoteFailure(type(exc).__name__, str(exc), False)
    return None


class RetryExecutor:
    """Run remote operations under a bounded retry policy.

    ``retry_interval`` is in seconds. Every failed attempt is reported to
    ``events_writer`` as an ``error`` event before the executor decides to
    wait or give up.
    """

    def __init__(
        self,
        max_retries: int,
        retry_interval: float,
        *,
        events_writer=None,
        classify: Callable[[BaseException], Optional[RemoteFailure]] = classify_failure,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries can't be negative")
        if retry_interval < 0:
            raise ValueError("retry_interval can't be negative")
        self.max_retries = int(max_retries)
        self.retry_interval = float(retry_interval)
        self.events_writer = events_writer
        self._classify = classify

    def call(
        self,
        operation: Callable[[], T],
        *,
        name: str,
        session: str = "",
        cancel: Optional[threading.Event] = None,
    ) -> Optional[T]:
        """Return ``operation()``'s result, or ``None`` if it never succeeded."""

        waiter = cancel if cancel is not None else threading.Event()
        for attempt in range(1, self.max_retries + 2):
            try:
                return operation()
            except Exception as exc:
                failure = self._classify(exc)
                if failure is None:
                    raise
                self._report(name, session, attempt, failure)
                if not failure.retryable:
                    return None
            if attempt > self.max_retries:
                break
            if waiter.wait(self.retry_interval):
                emit(self.events_writer, "error", session, operation=name, cancelled=True)
                return None
        return None

    def _report(self, name: str, session: str, attempt: int, failure: RemoteFailure) -> None:
        emit(
            self.events_writer,
            "error",
            session,
            operation=name,
            attempt=attempt,
            code=failure.code,
            message=failure.message,
            retryable=failure.retryable,
            status=failure.status,
        )


__all__ = ["RemoteFailure", "RetryExecutor", "RETRYABLE_ERROR_CODES", "classify_failure"]
