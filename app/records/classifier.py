from __future__ import annotations

import socket
from typing import Optional

import requests

from .cancellation import CancelSignal, FetchCancelled
from .error_codes import ErrorCode
from .logging_utils import _records_event

CONNECTION_EXCEPTIONS: tuple[type[BaseException], ...] = (
    # requests.ConnectTimeout and ReadTimeout are both covered by Timeout.
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)

CONNECTION_MESSAGE_MARKERS = (
    "timed out",
    "timeout",
    "connection refused",
    "econnrefused",
    "etimedout",
    "enotfound",
    "name or service not known",
    "failed to resolve",
)


def _is_connection_failure(error: BaseException) -> bool:
    if isinstance(error, CONNECTION_EXCEPTIONS):
        return True
    message = str(error).lower()
    return any(marker in message for marker in CONNECTION_MESSAGE_MARKERS)


def classify_failure(
    error: BaseException,
    signal: Optional[CancelSignal] = None,
    *,
    process: Optional[str] = None,
) -> str:
    """Map a raised fetch failure onto the batch error taxonomy.

    Returns ``ErrorCode.CANCELLED`` when the failure came from the caller's
    own signal or surfaced after that signal fired (a request cut short by
    cancellation often ends in a timeout), ``ErrorCode.CONNECTION`` for
    refused, unresolvable or timed out requests, and ``ErrorCode.UNEXPECTED``
    for anything else.
    Unexpected failures never count toward the outage threshold.
    """

    if isinstance(error, FetchCancelled) and (signal is None or error.signal is signal):
        kind = ErrorCode.CANCELLED
    elif signal is not None and signal.cancelled:
        kind = ErrorCode.CANCELLED
    elif _is_connection_failure(error):
        kind = ErrorCode.CONNECTION
    else:
        kind = ErrorCode.UNEXPECTED

    _records_event(
        "state" if kind == ErrorCode.CANCELLED else "error",
        phase="classify",
        kind=kind,
        process=process,
        error_type=type(error).__name__,
        error=str(error),
    )
    return kind


__all__ = ["classify_failure", "CONNECTION_EXCEPTIONS"]
